from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class Feedback(Document):
    user_id: PydanticObjectId
    rating: str  # good | bad
    message: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "feedback"
