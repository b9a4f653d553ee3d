"""Essay uploads: object storage plus the upload row."""

import re
from datetime import datetime

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import NotFoundError, StorageError
from app.core.logging import get_logger
from app.models.upload import EssayUpload
from app.storage.base import StorageBackend, get_storage

log = get_logger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^\w.\- ]+")


def safe_file_name(file_name: str) -> str:
    name = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_NAME_RE.sub("_", name).strip(" .")
    return name or "document"


def storage_key(chat_user_id: int, file_name: str, now: datetime | None = None) -> str:
    ts = int((now or datetime.utcnow()).timestamp() * 1000)
    return f"essays/{chat_user_id}/{ts}_{safe_file_name(file_name)}"


async def store_file(
    chat_user_id: int,
    file_name: str,
    content: bytes,
    mime_type: str | None,
    storage: StorageBackend | None = None,
) -> str:
    """Write the original bytes to the essays bucket; return the key."""
    storage = storage or get_storage()
    key = storage_key(chat_user_id, file_name)
    try:
        await storage.put(get_settings().essays_bucket, key, content, content_type=mime_type)
    except (OSError, ValueError) as e:
        log.error("essay_store_failed", key=key, error=str(e))
        raise StorageError() from e
    return key


async def load_file(key: str, storage: StorageBackend | None = None) -> bytes:
    storage = storage or get_storage()
    try:
        return await storage.get(get_settings().essays_bucket, key)
    except FileNotFoundError as e:
        raise NotFoundError("Stored essay not found") from e
    except (OSError, ValueError) as e:
        log.error("essay_load_failed", key=key, error=str(e))
        raise StorageError() from e


async def create_upload(
    user_id: PydanticObjectId,
    service: str,
    file_name: str,
    file_size: int,
    file_path: str,
    mime_type: str | None,
    word_count: int,
    credits_required: int,
) -> EssayUpload:
    upload = EssayUpload(
        user_id=user_id,
        service=service,
        file_name=file_name,
        file_size=file_size,
        file_path=file_path,
        mime_type=mime_type,
        word_count=word_count,
        credits_required=credits_required,
    )
    await upload.insert()
    log.info("upload_created", upload_id=str(upload.id), word_count=word_count, credits_required=credits_required)
    return upload


async def get_upload(upload_id: PydanticObjectId, user_id: PydanticObjectId | None = None) -> EssayUpload:
    upload = await EssayUpload.get(upload_id)
    if not upload or (user_id is not None and upload.user_id != user_id):
        raise NotFoundError("Upload not found")
    return upload


async def set_status(upload: EssayUpload, status: str | None = None, payment_status: str | None = None) -> None:
    changes = {EssayUpload.updated_at: datetime.utcnow()}
    if status:
        changes[EssayUpload.status] = status
    if payment_status:
        changes[EssayUpload.payment_status] = payment_status
    await upload.set(changes)
