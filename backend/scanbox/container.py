from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

from scanbox.config import Settings
from scanbox.core.ports.storage import IPartWriter
from scanbox.core.services.upload_handler import UploadRequestHandler
from scanbox.models.storage.disk_writer import DiskPartWriter

logger = logging.getLogger("scanbox.container")

@dataclass
class AppContainer:
    root: Path
    writer: IPartWriter
    upload_handler: UploadRequestHandler

def build_container(settings: Settings, writer: IPartWriter | None = None) -> AppContainer:
    """Wire the writer and upload handler for the configured root (fails if the root is unusable)."""
    root = settings.check_root()
    writer = writer or DiskPartWriter()
    handler = UploadRequestHandler(
        root=root,
        writer=writer,
        accepted_field=settings.accepted_field,
        max_header_bytes=settings.max_header_bytes,
        max_part_bytes=settings.max_part_bytes,
        max_parts=settings.max_parts,
        max_name_attempts=settings.max_name_attempts,
    )
    logger.info(
        "🔧 Upload root=%s | field=%s | max_part_bytes=%s",
        root, settings.accepted_field or "*", settings.max_part_bytes,
    )
    return AppContainer(root=root, writer=writer, upload_handler=handler)
