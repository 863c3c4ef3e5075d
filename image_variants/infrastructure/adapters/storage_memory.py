from __future__ import annotations

from typing import Dict, List

from image_variants.application.interfaces.storage_driver import IStorageDriver


class InMemoryStorageDriver(IStorageDriver):
    """Dict-backed storage for dry runs and tests."""

    def __init__(self) -> None:
        self._files: Dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes) -> str:
        self._files[path] = bytes(data)
        return path

    async def download(self, path: str) -> bytes:
        try:
            return self._files[path]
        except KeyError:
            raise FileNotFoundError(f"File not found: {path}") from None

    async def delete(self, path: str) -> None:
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        del self._files[path]

    def paths(self) -> List[str]:
        return list(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)
