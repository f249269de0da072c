from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

from multipart import parse_options_header

from scanbox.core.entities import StoredFile, UploadOutcome
from scanbox.core.errors import (
    UnsupportedMediaTypeError,
    UnsupportedMethodError,
    UploadError,
    ValidationError,
    WriteError,
)
from scanbox.core.ports.storage import IPartWriter
from scanbox.core.services.ingest_service import MultipartIngestionEngine
from scanbox.models.schemas import StoredFileInfo, UploadErrorInfo, UploadResponse

log = logging.getLogger("scanbox.upload")

UPLOAD_METHOD = "POST"

# RFC 2046 bchars, max 70, must not end with a space
_BOUNDARY = re.compile(r"^[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]$")


def is_valid_boundary(boundary: str) -> bool:
    return bool(_BOUNDARY.match(boundary))


class UploadRequestHandler:
    """Validates an upload request, runs ingestion, and maps the outcome to a status + body."""

    def __init__(
        self,
        root: Path,
        writer: IPartWriter,
        accepted_field: Optional[str] = None,
        max_header_bytes: int = 16 * 1024,
        max_part_bytes: Optional[int] = None,
        max_parts: Optional[int] = None,
        max_name_attempts: int = 100,
    ):
        self.root = Path(root)
        self.writer = writer
        self.accepted_field = accepted_field
        self.max_header_bytes = max_header_bytes
        self.max_part_bytes = max_part_bytes
        self.max_parts = max_parts
        self.max_name_attempts = max_name_attempts

    def validate(self, method: str, content_type: Optional[str]) -> str:
        """Return the multipart boundary or raise a ValidationError. Touches nothing."""
        if method.upper() != UPLOAD_METHOD:
            raise UnsupportedMethodError(f"Method {method} not allowed; use {UPLOAD_METHOD}")
        if not content_type:
            raise UnsupportedMediaTypeError("Expecting multipart/form-data")
        mime, params = parse_options_header(content_type)
        mime = mime.strip().lower()
        if not mime.startswith("multipart/"):
            raise UnsupportedMediaTypeError(f"Expecting multipart/form-data, got {mime}")
        boundary = params.get("boundary")
        if not boundary:
            raise ValidationError("Missing multipart boundary parameter")
        if not is_valid_boundary(boundary):
            raise ValidationError("Invalid multipart boundary parameter")
        return boundary

    def engine(self, boundary: str) -> MultipartIngestionEngine:
        return MultipartIngestionEngine(
            self.root,
            self.writer,
            boundary,
            accepted_field=self.accepted_field,
            max_header_bytes=self.max_header_bytes,
            max_part_bytes=self.max_part_bytes,
            max_parts=self.max_parts,
            max_name_attempts=self.max_name_attempts,
        )

    async def handle(
        self, method: str, content_type: Optional[str], stream: AsyncIterator[bytes]
    ) -> Tuple[int, UploadResponse]:
        try:
            boundary = self.validate(method, content_type)
        except ValidationError as e:
            log.warning("⚠️ Rejected upload: %s", e.message)
            return e.status_code, _error_response(e, [])

        outcome = await self.engine(boundary).ingest(stream)
        return self.respond(outcome)

    def respond(self, outcome: UploadOutcome) -> Tuple[int, UploadResponse]:
        files = outcome.stored
        if outcome.ok:
            log.info("✅ Upload done | stored=%d", len(files))
            return 200, UploadResponse(status="ok", stored=len(files), files=_file_infos(files))

        err = outcome.error
        if isinstance(err, WriteError):
            log.error("❌ Write failure: %s", err.message)
        return err.status_code, _error_response(err, files)


def _file_infos(files: List[StoredFile]) -> List[StoredFileInfo]:
    return [StoredFileInfo(name=f.name, size=f.size) for f in files]


def _error_response(err: UploadError, files: List[StoredFile]) -> UploadResponse:
    return UploadResponse(
        status="error",
        stored=len(files),
        files=_file_infos(files),
        error=UploadErrorInfo(
            kind=err.kind,
            message=err.message,
            part_index=err.part_index,
            part_name=err.part_name,
        ),
    )
