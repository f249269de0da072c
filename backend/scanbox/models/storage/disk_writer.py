from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from scanbox.core.errors import NameTakenError, WriteError
from scanbox.core.ports.storage import IPartWriter

log = logging.getLogger("scanbox.storage")


class DiskPartWriter(IPartWriter):
    """
    Streams one part to a new file.

    The file is created with O_EXCL before the first chunk is pulled, so an
    existing file is reported as NameTakenError without consuming any input.
    Whatever ends the write early (I/O error, a parse error or disconnect
    raised by the chunk source, task cancellation), the partial file is
    removed before the exception leaves this method.
    """

    async def write(self, path: Path, chunks: AsyncIterator[bytes]) -> int:
        try:
            fh = await aiofiles.open(path, "xb")
        except FileExistsError as e:
            raise NameTakenError(f"File already exists: {path.name}") from e
        except OSError as e:
            raise WriteError(f"Cannot create {path.name}: {e.strerror or e}") from e

        written = 0
        complete = False
        try:
            try:
                async for chunk in chunks:
                    log.debug("Got part chunk, len: %d", len(chunk))
                    await self._write_chunk(fh, chunk)
                    written += len(chunk)
            finally:
                await fh.close()
            complete = True
        except OSError as e:
            raise WriteError(f"Writing {path.name} failed after {written} bytes: {e.strerror or e}") from e
        finally:
            if not complete:
                await self._discard(path)

        return written

    async def _write_chunk(self, fh, chunk: bytes) -> None:
        await fh.write(chunk)

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
            log.info("🧹 Removed partial file %s", path.name)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("⚠️ Could not remove partial file %s: %s", path, e)
