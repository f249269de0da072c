from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, Field

class StoredFileInfo(BaseModel):
    name: str
    size: int = Field(..., ge=0, description="Bytes written")

class UploadErrorInfo(BaseModel):
    kind: str
    message: str
    part_index: Optional[int] = None
    part_name: Optional[str] = None

class UploadResponse(BaseModel):
    status: str  # "ok" | "error"
    stored: int = Field(..., ge=0, description="Files stored before any failure")
    files: List[StoredFileInfo] = Field(default_factory=list)
    error: Optional[UploadErrorInfo] = None

class HealthResponse(BaseModel):
    status: str
    root_dir: str
    writable: bool = False
