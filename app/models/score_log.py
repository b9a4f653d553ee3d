from datetime import datetime
from typing import Any

from beanie import Document, PydanticObjectId
from pydantic import Field


class ScoreLogEntry(Document):
    """One scoring attempt against the external originality API."""
    user_id: PydanticObjectId
    upload_id: PydanticObjectId
    word_count: int
    credits_used: int
    request_data: dict[str, Any] = Field(default_factory=dict)
    response_data: dict[str, Any] | None = None
    ai_score: float | None = None
    ai_confidence: float | None = None
    public_link: str | None = None
    scan_id: str | None = None
    status: str = "pending"  # pending | completed | failed
    error_message: str | None = None
    credits_refunded: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "score_logs"
        indexes = [
            [("upload_id", 1), ("created_at", -1)],
            [("status", 1), ("created_at", -1)],
        ]
