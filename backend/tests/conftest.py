"""
Shared pytest fixtures for scanbox tests.

Provides:
- A temporary upload root per test
- Settings / FastAPI TestClient bound to that root
- A multipart body builder and a chunked async stream helper
"""

from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from scanbox.config import Settings
from scanbox.main import create_app

BOUNDARY = "XYZ"

# (field name, filename or None, content type or None, payload)
Part = Tuple[str, Optional[str], Optional[str], bytes]


def build_multipart(parts: Iterable[Part], boundary: str = BOUNDARY, close: bool = True) -> bytes:
    out = bytearray()
    for name, filename, content_type, payload in parts:
        out += f"--{boundary}\r\n".encode()
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        out += f"Content-Disposition: {disposition}\r\n".encode()
        if content_type:
            out += f"Content-Type: {content_type}\r\n".encode()
        out += b"\r\n" + payload + b"\r\n"
    if close:
        out += f"--{boundary}--\r\n".encode()
    return bytes(out)


async def chunked(data: bytes, size: int = 4096) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i:i + size]


def listing(root: Path) -> List[str]:
    return sorted(p.name for p in root.iterdir())


@pytest.fixture
def make_body():
    return build_multipart


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    root = tmp_path / "scans"
    root.mkdir()
    return root


@pytest.fixture
def settings(root_dir: Path) -> Settings:
    return Settings(root_dir=root_dir)


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as c:
        yield c
