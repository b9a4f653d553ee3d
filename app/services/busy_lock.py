"""Per-user busy lease: at most one extraction/scoring operation in flight per user."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import BusyError
from app.core.logging import get_logger
from app.models.user import User

log = get_logger(__name__)


async def acquire(user_id: PydanticObjectId, max_hold_seconds: int | None = None) -> datetime | None:
    """
    Take the lease with one conditional update. A lease older than max_hold_seconds
    is treated as abandoned and taken over. Returns the lease start, which identifies
    this holder to release(), or None if someone else holds it.
    """
    max_hold = max_hold_seconds if max_hold_seconds is not None else get_settings().busy_lock_max_seconds
    now = datetime.utcnow()
    now = now.replace(microsecond=now.microsecond // 1000 * 1000)  # BSON dates keep milliseconds
    stale_before = now - timedelta(seconds=max_hold)
    result = await User.get_motor_collection().update_one(
        {
            "_id": user_id,
            "$or": [
                {"analyzing_status": False},
                {"analyzing_started_at": None},
                {"analyzing_started_at": {"$lt": stale_before}},
            ],
        },
        {"$set": {"analyzing_status": True, "analyzing_started_at": now}},
    )
    if result.modified_count == 1:
        log.debug("busy_lock_acquired", user_id=str(user_id))
        return now
    return None


async def release(user_id: PydanticObjectId, started_at: datetime | None = None) -> bool:
    """
    Clear the lease. With started_at only the lease taken at that moment is cleared,
    so a holder that overran and lost its lease leaves the new holder alone.
    Without it the lease is cleared unconditionally (operator release).
    """
    query: dict = {"_id": user_id}
    if started_at is not None:
        query["analyzing_started_at"] = started_at
    result = await User.get_motor_collection().update_one(
        query,
        {"$set": {"analyzing_status": False, "analyzing_started_at": None}},
    )
    if result.matched_count == 0:
        log.warning("busy_lock_lost", user_id=str(user_id))
        return False
    log.debug("busy_lock_released", user_id=str(user_id))
    return True


@asynccontextmanager
async def hold(user_id: PydanticObjectId) -> AsyncIterator[None]:
    """Acquire for the duration of the block; released on every exit path."""
    started_at = await acquire(user_id)
    if started_at is None:
        raise BusyError()
    try:
        yield
    finally:
        await release(user_id, started_at)
