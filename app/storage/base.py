from abc import ABC, abstractmethod
from typing import BinaryIO

from app.core.config import get_settings


class StorageBackend(ABC):
    @abstractmethod
    async def put(self, bucket: str, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        """Store file; return path or URI. Backend failures raise OSError."""
        ...

    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes:
        """Retrieve file bytes. Missing key raises FileNotFoundError."""
        ...

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> None:
        """Delete file; missing keys are ignored."""
        ...


def get_storage() -> StorageBackend:
    settings = get_settings()
    if settings.storage_backend == "gcs":
        from app.storage.gcs import GCSStorage
        return GCSStorage()
    from app.storage.local import LocalStorage
    return LocalStorage()
