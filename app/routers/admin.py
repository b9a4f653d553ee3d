from datetime import datetime

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.audit import log_event
from app.core.pagination import Page, paginate
from app.deps import require_admin
from app.models.score_log import ScoreLogEntry
from app.services import busy_lock
from app.services import credits as credits_service
from app.services import users as users_service

router = APIRouter(dependencies=[Depends(require_admin)])


class ScoreLogOut(BaseModel):
    id: str
    user_id: str
    upload_id: str
    word_count: int
    credits_used: int
    status: str
    ai_score: float | None = None
    ai_confidence: float | None = None
    public_link: str | None = None
    error_message: str | None = None
    credits_refunded: bool = False
    created_at: datetime


class GrantCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0)
    note: str | None = None


@router.get("/score-logs", response_model=Page[ScoreLogOut])
async def list_score_logs(
    status: str | None = Query(None, pattern="^(pending|completed|failed)$"),
    limit: int = Query(50),
    offset: int = Query(0),
):
    """Score logs, newest first, optionally filtered by status."""
    limit, offset = paginate(limit, offset)
    query = ScoreLogEntry.find(ScoreLogEntry.status == status) if status else ScoreLogEntry.find_all()
    total = await query.count()
    entries = await query.sort("-created_at").skip(offset).limit(limit).to_list()
    items = [
        ScoreLogOut(
            id=str(e.id),
            user_id=str(e.user_id),
            upload_id=str(e.upload_id),
            word_count=e.word_count,
            credits_used=e.credits_used,
            status=e.status,
            ai_score=e.ai_score,
            ai_confidence=e.ai_confidence,
            public_link=e.public_link,
            error_message=e.error_message,
            credits_refunded=e.credits_refunded,
            created_at=e.created_at,
        )
        for e in entries
    ]
    return Page(items=items, limit=limit, offset=offset, total=total)


@router.post("/users/{user_id}/release-lock")
async def release_lock(user_id: PydanticObjectId):
    """Clear a stuck busy lease."""
    user = await users_service.get_user(user_id)
    await busy_lock.release(user.id)
    await log_event("lock_released", str(user.id), actor="admin", user_id=user.id)
    return {"status": "ok"}


@router.post("/users/{user_id}/credits")
async def grant_credits(user_id: PydanticObjectId, body: GrantCreditsRequest):
    user = await users_service.get_user(user_id)
    balance = await credits_service.credit(
        user.id,
        body.amount,
        "admin_grant",
        reference_type="admin",
        description=body.note,
    )
    await log_event("admin_grant", str(user.id), actor="admin", user_id=user.id, details={"amount": body.amount, "note": body.note})
    return {"balance": balance}
