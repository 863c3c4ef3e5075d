from __future__ import annotations

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from image_variants.application.interfaces.storage_driver import IStorageDriver
from image_variants.core.exceptions import StorageDriverError

logger = logging.getLogger(__name__)


class LocalStorageDriver(IStorageDriver):
    """Store objects as files under a base directory.

    Storage paths are logical (``/uploads/originals/x.jpg``); they are mapped
    below ``base_dir`` and may not escape it. ``upload`` returns the logical
    path unchanged.
    """

    base_dir: Path

    def __init__(self, base_dir: str | Path = "data/uploads") -> None:
        self.base_dir = Path(base_dir)
        # Created lazily on first upload to avoid empty folders

    def _resolve(self, path: str) -> Path:
        relative = path.lstrip("/\\")
        if not relative:
            raise StorageDriverError("Empty storage path", path=path)
        root = self.base_dir.resolve()
        target = (root / relative).resolve()
        if root != target and root not in target.parents:
            raise StorageDriverError(f"Path escapes storage root: {path}", path=path)
        return target

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        logger.debug("Stored %d bytes at %s", len(data), target)
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        async with aiofiles.open(target, "rb") as f:
            return await f.read()

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        await aiofiles.os.remove(target)
        logger.debug("Removed %s", target)

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(self._resolve(path))
