from datetime import datetime
from typing import Any

from beanie import Document, PydanticObjectId
from pydantic import Field


class AuditLog(Document):
    """Balance changes outside the scan path and availability toggles."""
    action: str  # payment_captured | credit_refunded | admin_grant | lock_released | service_toggled
    actor: str = "system"  # system | admin | webhook
    user_id: PydanticObjectId | None = None
    target: str | None = None  # payment id, score log id, service name
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("action", 1), ("created_at", -1)],
        ]
