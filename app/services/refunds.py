"""What happens to the debited credits when the scoring call fails after the debit."""

from typing import Protocol

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.logging import get_logger
from app.models.score_log import ScoreLogEntry
from app.services import credits as credits_service

log = get_logger(__name__)


class RefundPolicy(Protocol):
    async def on_scoring_failure(self, entry: ScoreLogEntry) -> bool:
        """Return True when the credits for this attempt were returned to the user."""
        ...


class NoRefund:
    async def on_scoring_failure(self, entry: ScoreLogEntry) -> bool:
        log.info("scoring_failure_not_refunded", score_log_id=str(entry.id), credits=entry.credits_used)
        return False


class RefundOnScoringFailure:
    async def on_scoring_failure(self, entry: ScoreLogEntry) -> bool:
        balance = await credits_service.credit(
            entry.user_id,
            entry.credits_used,
            "refund",
            upload_id=entry.upload_id,
            description="Refund for failed originality scan",
            reference_type="score_log",
            reference_id=str(entry.id),
            idempotency_key=f"refund_{entry.id}",
        )
        await log_event(
            "credit_refunded",
            str(entry.id),
            user_id=entry.user_id,
            details={"credits": entry.credits_used, "upload_id": str(entry.upload_id)},
        )
        log.info("scoring_failure_refunded", score_log_id=str(entry.id), balance_after=balance)
        return True


def refund_policy_from_settings() -> RefundPolicy:
    return RefundOnScoringFailure() if get_settings().refund_on_scoring_failure else NoRefund()
