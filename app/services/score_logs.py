"""Score log: one row per scoring attempt, written before and after the external call."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId

from app.models.score_log import ScoreLogEntry
from app.services.scoring import ScoreResult


async def create_pending(
    user_id: PydanticObjectId,
    upload_id: PydanticObjectId,
    word_count: int,
    credits_used: int,
    request_data: dict[str, Any],
) -> ScoreLogEntry:
    entry = ScoreLogEntry(
        user_id=user_id,
        upload_id=upload_id,
        word_count=word_count,
        credits_used=credits_used,
        request_data=request_data,
    )
    await entry.insert()
    return entry


async def mark_completed(entry: ScoreLogEntry, result: ScoreResult) -> ScoreLogEntry:
    await entry.set({
        ScoreLogEntry.status: "completed",
        ScoreLogEntry.response_data: result.raw,
        ScoreLogEntry.ai_score: result.ai_score,
        ScoreLogEntry.ai_confidence: result.ai_confidence,
        ScoreLogEntry.public_link: result.public_link,
        ScoreLogEntry.scan_id: result.scan_id,
        ScoreLogEntry.updated_at: datetime.utcnow(),
    })
    return entry


async def mark_failed(entry: ScoreLogEntry, error_message: str, refunded: bool = False) -> ScoreLogEntry:
    await entry.set({
        ScoreLogEntry.status: "failed",
        ScoreLogEntry.error_message: error_message[:2000],
        ScoreLogEntry.credits_refunded: refunded,
        ScoreLogEntry.updated_at: datetime.utcnow(),
    })
    return entry


async def latest_for_upload(upload_id: PydanticObjectId) -> ScoreLogEntry | None:
    """The active entry for an upload is the most recent one."""
    return await (
        ScoreLogEntry.find(ScoreLogEntry.upload_id == upload_id)
        .sort("-created_at", "-_id")
        .first_or_none()
    )

