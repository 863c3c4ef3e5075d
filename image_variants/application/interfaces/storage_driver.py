from __future__ import annotations

from typing import Protocol


class IStorageDriver(Protocol):
    """Durable byte storage keyed by a path-like identifier.

    Implementations may back onto local FS, S3, an in-memory dict, etc.
    Calls on different paths are independent; no transactional guarantees.
    """

    async def upload(self, path: str, data: bytes) -> str:
        """Persist bytes under ``path`` and return the confirmed path or URL."""
        ...

    async def download(self, path: str) -> bytes:
        """Read bytes back; raises if the path is missing or unreadable."""
        ...

    async def delete(self, path: str) -> None:
        """Remove the object; raises if the path is missing or unremovable."""
        ...
