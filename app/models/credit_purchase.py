from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class CreditPurchase(Document):
    """Razorpay payment link -> user for webhook attribution."""
    user_id: PydanticObjectId
    credits: int
    amount: int  # minor units
    currency: str = "HKD"
    payment_link_id: str | None = None
    payment_url: str | None = None
    upload_id: PydanticObjectId | None = None  # pending upload the purchase was started for
    status: str = "pending"  # pending | completed | failed | cancelled
    payment_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_purchases"
        indexes = [[("payment_link_id", 1)]]
