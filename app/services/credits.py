"""Credit ledger: atomic balance updates on the user row plus an append-only audit trail."""

from beanie import PydanticObjectId
from pymongo import ReturnDocument

from app.core.exceptions import BadRequestError, InsufficientCreditError, NotFoundError
from app.core.logging import get_logger
from app.models.credit_ledger import CreditLedgerEntry
from app.models.user import User

log = get_logger(__name__)

REASONS = ("originality_scan", "document_upload", "purchase", "refund", "admin_grant")


def _check(amount: int, reason: str) -> None:
    if reason not in REASONS:
        raise BadRequestError(f"Invalid reason: {reason}")
    if not isinstance(amount, int) or amount <= 0:
        raise BadRequestError("Amount must be a positive integer")


async def get_balance(user_id: PydanticObjectId) -> int:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.credit


async def _append_entry(
    user_id: PydanticObjectId,
    amount: int,
    balance_after: int,
    reason: str,
    upload_id: PydanticObjectId | None,
    reference_type: str | None,
    reference_id: str | None,
    description: str | None,
    idempotency_key: str | None,
) -> CreditLedgerEntry:
    entry = CreditLedgerEntry(
        user_id=user_id,
        amount=amount,
        balance_after=balance_after,
        reason=reason,
        upload_id=upload_id,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        idempotency_key=idempotency_key,
    )
    await entry.insert()
    return entry


async def debit(
    user_id: PydanticObjectId,
    amount: int,
    reason: str,
    upload_id: PydanticObjectId | None = None,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> int:
    """
    Subtract credits with a single conditional update (credit >= amount).
    Returns the balance after. Raises InsufficientCreditError without touching the balance.
    """
    _check(amount, reason)
    collection = User.get_motor_collection()
    doc = await collection.find_one_and_update(
        {"_id": user_id, "credit": {"$gte": amount}},
        {"$inc": {"credit": -amount}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        available = await get_balance(user_id)
        log.info("credit_debit_rejected", user_id=str(user_id), amount=amount, available=available)
        raise InsufficientCreditError(required=amount, available=available)
    balance_after = doc["credit"]
    await _append_entry(
        user_id, -amount, balance_after, reason, upload_id, reference_type, reference_id, description, None
    )
    log.info("credit_debited", user_id=str(user_id), amount=amount, reason=reason, balance_after=balance_after)
    return balance_after


async def credit(
    user_id: PydanticObjectId,
    amount: int,
    reason: str,
    upload_id: PydanticObjectId | None = None,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> int:
    """
    Add credits atomically. Returns the balance after.
    Idempotency: if idempotency_key was already applied for this user, return current balance and do not re-apply.
    """
    _check(amount, reason)
    if idempotency_key:
        existing = await CreditLedgerEntry.find_one(
            CreditLedgerEntry.user_id == user_id,
            CreditLedgerEntry.idempotency_key == idempotency_key,
        )
        if existing:
            return await get_balance(user_id)
    collection = User.get_motor_collection()
    doc = await collection.find_one_and_update(
        {"_id": user_id},
        {"$inc": {"credit": amount}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFoundError("User not found")
    balance_after = doc["credit"]
    await _append_entry(
        user_id, amount, balance_after, reason, upload_id, reference_type, reference_id, description, idempotency_key
    )
    log.info("credit_added", user_id=str(user_id), amount=amount, reason=reason, balance_after=balance_after)
    return balance_after
