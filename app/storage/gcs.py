import asyncio
from typing import BinaryIO

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from app.core.config import get_settings
from app.storage.base import StorageBackend


class GCSStorage(StorageBackend):
    """Logical bucket names are prefixed with GCS_BUCKET_PREFIX to form the real bucket."""

    def __init__(self) -> None:
        self.prefix = get_settings().gcs_bucket_prefix
        self._client = storage.Client()

    def _blob(self, bucket: str, key: str) -> storage.Blob:
        return self._client.bucket(f"{self.prefix}{bucket}").blob(key)

    @staticmethod
    async def _call(fn, *args, **kwargs):
        """Run a blocking client call in a thread; API errors surface as OSError like the local backend."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except gcs_exceptions.NotFound as e:
            raise FileNotFoundError(str(e)) from e
        except gcs_exceptions.GoogleAPIError as e:
            raise OSError(f"GCS request failed: {e}") from e

    async def put(self, bucket: str, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        blob = self._blob(bucket, key)
        content_type = content_type or "application/octet-stream"
        if isinstance(body, bytes):
            await self._call(blob.upload_from_string, body, content_type=content_type)
        else:
            await self._call(blob.upload_from_file, body, content_type=content_type)
        return f"gs://{self.prefix}{bucket}/{key}"

    async def get(self, bucket: str, key: str) -> bytes:
        blob = self._blob(bucket, key)
        if not await self._call(blob.exists):
            raise FileNotFoundError(key)
        return await self._call(blob.download_as_bytes)

    async def delete(self, bucket: str, key: str) -> None:
        blob = self._blob(bucket, key)
        if await self._call(blob.exists):
            await self._call(blob.delete)
