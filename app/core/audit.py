from typing import Any

from beanie import PydanticObjectId

from app.models.audit_log import AuditLog


async def log_event(
    action: str,
    target: str | None = None,
    *,
    actor: str = "system",
    user_id: PydanticObjectId | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(action=action, actor=actor, user_id=user_id, target=target, details=details or {})
    await entry.insert()
    return entry
