from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class CreditLedgerEntry(Document):
    user_id: PydanticObjectId
    amount: int  # positive = credit, negative = debit
    balance_after: int
    reason: str  # originality_scan, document_upload, purchase, refund, admin_grant
    upload_id: PydanticObjectId | None = None
    reference_type: str | None = None  # razorpay_payment, score_log, admin
    reference_id: str | None = None
    description: str | None = None
    idempotency_key: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_ledger"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("idempotency_key", 1)],
        ]
