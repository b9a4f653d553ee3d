from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field

UPLOAD_STATUSES = ("queued", "processing", "completed")
PAYMENT_STATUSES = ("not_paid", "paid", "failed")


class EssayUpload(Document):
    """One submitted document and its lifecycle."""
    user_id: PydanticObjectId
    service: str
    file_name: str
    file_size: int = 0
    file_path: str  # storage key inside the essays bucket
    mime_type: str | None = None
    word_count: int = 0
    credits_required: int = 0
    status: str = "queued"
    payment_status: str = "not_paid"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "essay_uploads"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
        ]

    @property
    def is_settled(self) -> bool:
        return self.status == "completed" or self.payment_status == "paid"
