from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    chat_user_id: Indexed(int, unique=True)
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    language_code: str = "en"
    credit: int = 0  # never negative; only changed through app.services.credits
    analyzing_status: bool = False
    analyzing_started_at: datetime | None = None  # busy lease start
    customer_id: str | None = None  # payment provider customer
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.username or f"User {self.chat_user_id}"
