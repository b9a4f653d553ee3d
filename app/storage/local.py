import asyncio
from pathlib import Path
from typing import BinaryIO

from app.core.config import get_settings
from app.storage.base import StorageBackend


class LocalStorage(StorageBackend):
    """Buckets map to sub-directories of the configured root."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or get_settings().storage_local_path)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, key: str) -> Path:
        path = (self.root / bucket / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def put(self, bucket: str, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        path = self._path(bucket, key)
        data = body if isinstance(body, bytes) else body.read()

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return str(path)

    async def get(self, bucket: str, key: str) -> bytes:
        path = self._path(bucket, key)
        if not path.exists():
            raise FileNotFoundError(key)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        if path.exists():
            path.unlink()
