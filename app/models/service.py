from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class Service(Document):
    """Availability row for one entry of the service menu."""
    name: Indexed(str, unique=True)
    button_id: Indexed(str, unique=True)
    status: bool = True
    note: str | None = None
    description: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "services"
