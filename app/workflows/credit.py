"""Buy-credits flow: package menu, custom amount input, payment link."""

from app.bot.dispatcher import ChatContext, Dispatcher
from app.bot.transport import Button
from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.services import payments as payments_service

log = get_logger(__name__)


def _price(amount: int) -> str:
    return payments_service.format_amount(amount, get_settings().credit_currency)


async def show_packages(ctx: ChatContext) -> None:
    rows = [
        [Button(text=ctx.t("credit_package", credits=credits, price=_price(amount)), callback_data=f"buy_credit_{credits}")]
        for credits, amount in payments_service.PACKAGES.items()
    ]
    rows.append([Button(text=ctx.t("button_custom_amount"), callback_data="buy_credit_custom")])
    await ctx.reply(ctx.t("buy_credit_menu"), rows)


async def _send_payment_link(ctx: ChatContext, credits: int) -> None:
    try:
        purchase = await payments_service.create_credit_purchase(
            ctx.user,
            credits,
            upload_id=ctx.session.pending_upload_id,
            client=ctx.deps.payments_client,
        )
    except BadRequestError as e:
        log.warning("credit_purchase_unavailable", error=e.message)
        await ctx.reply(ctx.t("payments_unavailable"))
        return
    await ctx.reply(
        ctx.t("payment_link", credits=credits, price=_price(purchase.amount)),
        [[Button(text=ctx.t("button_pay"), url=purchase.payment_url)]] if purchase.payment_url else None,
    )


async def buy_package(ctx: ChatContext) -> None:
    """Button buy_credit_<n> for one of the fixed packages."""
    credits = int(ctx.match.group(1))
    if credits not in payments_service.PACKAGES:
        await show_packages(ctx)
        return
    ctx.session.waiting_for_credit_amount = False
    await _send_payment_link(ctx, credits)


async def ask_custom_amount(ctx: ChatContext) -> None:
    ctx.session.waiting_for_credit_amount = True
    await ctx.reply(
        ctx.t(
            "credit_custom_prompt",
            bulk_price=_price(payments_service.BULK_UNIT_PRICE),
            unit_price=_price(payments_service.UNIT_PRICE),
        )
    )


async def custom_amount_text(ctx: ChatContext) -> bool:
    if not ctx.session.waiting_for_credit_amount:
        return False
    raw = (ctx.update.text or "").strip()
    if not raw.isdigit() or not 0 < int(raw) <= payments_service.MAX_CUSTOM_CREDITS:
        await ctx.reply(ctx.t("credit_invalid_amount", max=payments_service.MAX_CUSTOM_CREDITS))
        return True
    ctx.session.waiting_for_credit_amount = False
    await _send_payment_link(ctx, int(raw))
    return True


def register(dp: Dispatcher) -> None:
    dp.callback("buy_credit")(show_packages)
    dp.callback("buy_credit_custom")(ask_custom_amount)
    dp.callback(r"buy_credit_(\d+)")(buy_package)
    dp.text(custom_amount_text)
