from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator

class IPartWriter(ABC):
    @abstractmethod
    async def write(self, path: Path, chunks: AsyncIterator[bytes]) -> int:
        """Create `path` exclusively, write `chunks` in order, return the byte count."""
        ...
