from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from scanbox.core.entities import StoredFile, UploadOutcome
from scanbox.core.errors import InternalError, NameTakenError, UploadError, WriteError
from scanbox.core.ports.storage import IPartWriter
from scanbox.core.services.multipart_stream import Event, MultipartStream, PartData, PartEnded, PartStarted
from scanbox.core.services.sanitizer import sanitize_filename

log = logging.getLogger("scanbox.ingest")


def _fallback_stem() -> str:
    # unique per request so concurrent nameless uploads never share a stem
    return f"scan-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


class MultipartIngestionEngine:
    """
    Drives one request body through the multipart parser and stores every
    file part under `root`. One instance per request: `used_names` is the
    request's own collision set and is never shared.

    A name that already exists on disk (an earlier upload, or a concurrent
    request that created it first) is not an error by itself: the writer's
    exclusive create reports NameTakenError before any body byte is read and
    the next `-N` suffix is tried, up to `max_name_attempts`. Only when those
    run out is NameTakenError surfaced. There is no cross-request lock.
    """

    def __init__(
        self,
        root: Path,
        writer: IPartWriter,
        boundary: str,
        *,
        accepted_field: Optional[str] = None,
        max_header_bytes: int = 16 * 1024,
        max_part_bytes: Optional[int] = None,
        max_parts: Optional[int] = None,
        max_name_attempts: int = 100,
        fallback_stem: Optional[str] = None,
    ):
        self.root = Path(root)
        self.writer = writer
        self.accepted_field = accepted_field
        self.max_name_attempts = max(1, max_name_attempts)
        self.fallback_stem = fallback_stem or _fallback_stem()
        self.parser = MultipartStream(
            boundary,
            max_header_bytes=max_header_bytes,
            max_part_bytes=max_part_bytes,
            max_parts=max_parts,
        )
        self.used_names: Set[str] = set()

    async def ingest(self, stream: AsyncIterator[bytes]) -> UploadOutcome:
        """
        Store every file part of `stream`. The first failure stops ingestion
        and is recorded on the outcome; files stored before it stay stored.
        """
        outcome = UploadOutcome()
        events = self._events(stream)
        current: Optional[PartStarted] = None
        try:
            async for event in events:
                if not isinstance(event, PartStarted):
                    continue  # body of a skipped part
                current = event
                headers = event.headers
                if not headers.is_file:
                    log.debug('Ignoring non-file field "%s"', headers.field_name)
                    continue
                if self.accepted_field is not None and headers.field_name != self.accepted_field:
                    log.debug('Ignoring unexpected field "%s"', headers.field_name)
                    continue
                outcome.stored.append(await self._store(event, events))
        except UploadError as e:
            if current is not None:
                if e.part_index is None:
                    e.part_index = current.index
                if e.part_index == current.index and e.part_name is None:
                    e.part_name = current.headers.filename
            outcome.error = e
            log.warning(
                "⚠️ Upload aborted after %d stored file(s): [%s] %s",
                outcome.count, e.kind, e.message,
            )
        except Exception as e:
            log.exception("❌ Unexpected error while ingesting upload")
            err = InternalError(f"Internal error: {type(e).__name__}")
            err.__cause__ = e
            outcome.error = err
        finally:
            await events.aclose()
        return outcome

    async def _events(self, stream: AsyncIterator[bytes]) -> AsyncIterator[Event]:
        async for chunk in stream:
            for event in self.parser.feed(chunk):
                yield event
        self.parser.close()

    async def _body(self, events: AsyncIterator[Event]) -> AsyncIterator[bytes]:
        async for event in events:
            if isinstance(event, PartData):
                yield event.data
            elif isinstance(event, PartEnded):
                return

    async def _store(self, started: PartStarted, events: AsyncIterator[Event]) -> StoredFile:
        headers = started.headers
        body = self._body(events)
        attempts = 0
        try:
            while True:
                name = sanitize_filename(
                    headers.filename,
                    self.used_names,
                    fallback=self.fallback_stem,
                    content_type=headers.content_type,
                )
                self.used_names.add(name)
                path = self._target(name)
                try:
                    size = await self.writer.write(path, body)
                except NameTakenError:
                    attempts += 1
                    if attempts >= self.max_name_attempts:
                        raise
                    log.info("%s already exists, trying next name", name)
                    continue
                log.info("📄 Stored %s (%d bytes)", name, size)
                return StoredFile(path=path, size=size)
        finally:
            await body.aclose()

    def _target(self, name: str) -> Path:
        path = self.root / name
        if path.parent != self.root or name in ("", ".", ".."):
            raise WriteError(f"Refusing to write outside upload root: {name!r}")
        return path
