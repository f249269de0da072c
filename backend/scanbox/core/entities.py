from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from scanbox.core.errors import UploadError


@dataclass(frozen=True)
class PartHeaders:
    field_name: str
    filename: Optional[str]  # untrusted, as sent by the client
    content_type: Optional[str]
    raw: Dict[str, str] = field(default_factory=dict)

    @property
    def is_file(self) -> bool:
        return self.filename is not None


@dataclass(frozen=True)
class StoredFile:
    path: Path
    size: int
    # records are only created once every byte is on disk, so always "complete";
    # a failed write removes its file and produces no record
    status: str = "complete"

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class UploadOutcome:
    stored: List[StoredFile] = field(default_factory=list)
    error: Optional[UploadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        return len(self.stored)
