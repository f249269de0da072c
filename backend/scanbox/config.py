# backend/scanbox/config.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env before reading settings
load_dotenv()

logger = logging.getLogger("scanbox.config")

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCANBOX_", extra="ignore")

    root_dir: Path = Field(Path("."), description="Directory uploaded files are written to")
    address: str = Field("127.0.0.1")
    port: int = Field(8080, ge=0, le=65535)
    verbosity: int = Field(0, ge=0)

    # only store file parts sent under this field name (None = any field)
    accepted_field: Optional[str] = Field(None)
    max_header_bytes: int = Field(16 * 1024, gt=0)
    max_part_bytes: Optional[int] = Field(None, gt=0)
    max_parts: Optional[int] = Field(1000, gt=0)
    max_name_attempts: int = Field(100, ge=1)

    def check_root(self) -> Path:
        """Resolve the upload root; a missing or non-directory root is fatal."""
        root = self.root_dir.expanduser().resolve()
        if not root.is_dir():
            raise RuntimeError(f"Upload root {root} does not exist or is not a directory")
        return root

settings = Settings()
