"""Razorpay payment links for credit packs and the webhook that tops up balances."""

import asyncio
import json
from datetime import datetime

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.security import verify_razorpay_webhook
from app.models.credit_purchase import CreditPurchase
from app.models.user import User
from app.services import credits as credits_service
from app.services import users as users_service

log = get_logger(__name__)

# credits -> price in minor units
PACKAGES = {10: 18000, 100: 170000}
BULK_THRESHOLD = 100
BULK_UNIT_PRICE = 1700
UNIT_PRICE = 1800
MAX_CUSTOM_CREDITS = 10000


def price_for(credits: int) -> int:
    if credits <= 0:
        raise BadRequestError("Credits must be positive")
    if credits > MAX_CUSTOM_CREDITS:
        raise BadRequestError(f"At most {MAX_CUSTOM_CREDITS} credits per purchase")
    if credits in PACKAGES:
        return PACKAGES[credits]
    if credits >= BULK_THRESHOLD:
        return credits * BULK_UNIT_PRICE
    return credits * UNIT_PRICE


def format_amount(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency}"


def get_client():
    import razorpay
    settings = get_settings()
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        raise BadRequestError("Payments not configured")
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))


def deep_link(start_param: str) -> str:
    return f"https://t.me/{get_settings().bot_username}?start={start_param}"


async def ensure_customer(user: User, client=None) -> str:
    if user.customer_id:
        return user.customer_id
    client = client or get_client()
    customer = await asyncio.to_thread(
        client.customer.create,
        {
            "name": user.display_name,
            "fail_existing": "0",
            "notes": {"chat_user_id": str(user.chat_user_id), "username": user.username or ""},
        },
    )
    await users_service.set_customer_id(user, customer["id"])
    return customer["id"]


async def create_credit_purchase(
    user: User,
    credits: int,
    upload_id: PydanticObjectId | None = None,
    client=None,
) -> CreditPurchase:
    """Create the purchase row and a payment link whose callback deep-links back into the chat."""
    settings = get_settings()
    amount = price_for(credits)
    client = client or get_client()
    customer_id = await ensure_customer(user, client)
    purchase = CreditPurchase(
        user_id=user.id,
        credits=credits,
        amount=amount,
        currency=settings.credit_currency,
        upload_id=upload_id,
    )
    await purchase.insert()
    start_param = f"payment_success_{upload_id}" if upload_id else "credit_purchase_success"
    link = await asyncio.to_thread(
        client.payment_link.create,
        {
            "amount": amount,
            "currency": settings.credit_currency,
            "description": f"{credits} Credits",
            "customer": {"name": user.display_name},
            "notes": {
                "purchase_id": str(purchase.id),
                "customer_id": customer_id,
                "credits": str(credits),
            },
            "callback_url": deep_link(start_param),
            "callback_method": "get",
        },
    )
    await purchase.set({
        CreditPurchase.payment_link_id: link["id"],
        CreditPurchase.payment_url: link.get("short_url"),
        CreditPurchase.updated_at: datetime.utcnow(),
    })
    log.info("credit_purchase_created", purchase_id=str(purchase.id), credits=credits, amount=amount)
    return purchase


async def _find_purchase(link_entity: dict) -> CreditPurchase | None:
    link_id = link_entity.get("id")
    purchase = await CreditPurchase.find_one(CreditPurchase.payment_link_id == link_id) if link_id else None
    if purchase:
        return purchase
    purchase_id = (link_entity.get("notes") or {}).get("purchase_id")
    if purchase_id and PydanticObjectId.is_valid(purchase_id):
        return await CreditPurchase.get(PydanticObjectId(purchase_id))
    return None


async def handle_webhook(payload: bytes, signature: str) -> dict:
    """Verify HMAC; on payment_link.paid apply credits idempotently."""
    settings = get_settings()
    if not settings.razorpay_webhook_secret:
        raise BadRequestError("Webhook secret not configured")
    if not verify_razorpay_webhook(payload, signature, settings.razorpay_webhook_secret):
        raise BadRequestError("Invalid webhook signature")
    try:
        data = json.loads(payload.decode())
    except ValueError as e:
        raise BadRequestError("Invalid webhook body") from e
    event = data.get("event")
    entities = data.get("payload", {})
    link = entities.get("payment_link", {}).get("entity", {})
    purchase = await _find_purchase(link)
    if not purchase:
        log.warning("webhook_purchase_not_found", webhook_event=event, payment_link_id=link.get("id"))
        return {"status": "ignored"}

    if event in ("payment_link.cancelled", "payment_link.expired"):
        if purchase.status == "pending":
            await purchase.set({CreditPurchase.status: "cancelled", CreditPurchase.updated_at: datetime.utcnow()})
        return {"status": "cancelled"}
    if event != "payment_link.paid":
        return {"status": "ignored"}

    payment = entities.get("payment", {}).get("entity", {})
    payment_id = payment.get("id")
    if not payment_id:
        raise BadRequestError("Webhook missing payment id")
    balance = await credits_service.credit(
        purchase.user_id,
        purchase.credits,
        "purchase",
        reference_type="razorpay_payment",
        reference_id=payment_id,
        description=f"Purchase {purchase.credits} credits",
        idempotency_key=f"razorpay_{payment_id}",
    )
    if purchase.status != "completed":
        await purchase.set({
            CreditPurchase.status: "completed",
            CreditPurchase.payment_id: payment_id,
            CreditPurchase.updated_at: datetime.utcnow(),
        })
        await log_event(
            "payment_captured",
            payment_id,
            actor="webhook",
            user_id=purchase.user_id,
            details={"amount": purchase.amount, "currency": purchase.currency, "credits": purchase.credits},
        )
    log.info("credit_purchase_paid", purchase_id=str(purchase.id), balance_after=balance)
    return {"status": "ok", "balance": balance}
