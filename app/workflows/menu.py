"""Welcome menu, service selection, profile and help."""

import re

from beanie import PydanticObjectId

from app.bot.dispatcher import ChatContext, Dispatcher
from app.core.logging import get_logger
from app.services import catalog
from app.services.catalog import ServiceKind
from app.workflows import keyboards
from app.workflows import upload as upload_workflow

log = get_logger(__name__)

_SERVICE_PATTERN = "|".join(re.escape(k.value) for k in ServiceKind)


async def send_main_menu(ctx: ChatContext) -> None:
    name = ctx.user.first_name or ctx.user.username or ""
    await ctx.reply(ctx.t("welcome", name=name), await keyboards.main_menu(ctx))


def _upload_id(raw: str) -> PydanticObjectId | None:
    return PydanticObjectId(raw) if PydanticObjectId.is_valid(raw) else None


async def start(ctx: ChatContext) -> None:
    """/start with optional deep-link payload from the payment redirect."""
    payload = ctx.update.command[1] if ctx.update.command else ""
    if payload.startswith("payment_success_"):
        upload_id = _upload_id(payload.removeprefix("payment_success_"))
        if upload_id is None:
            await ctx.reply(ctx.t("upload_not_found"))
            return
        await upload_workflow.resume_after_payment(ctx, upload_id)
        return
    if payload == "credit_purchase_success":
        await upload_workflow.resume_after_payment(ctx, None)
        return
    if payload.startswith("payment_cancel_") or payload == "credit_purchase_cancel":
        log.info("payment_cancelled", payload=payload)
        await ctx.reply(ctx.t("payment_cancelled"), keyboards.home(ctx))
        return
    ctx.session.waiting_for_credit_amount = False
    ctx.session.waiting_for_feedback_message = False
    await send_main_menu(ctx)


async def select_service(ctx: ChatContext) -> None:
    kind = catalog.parse_kind(ctx.update.callback_data)
    service = await catalog.get_service(kind) if kind else None
    if service is None:
        await ctx.reply(ctx.t("service_not_found"))
        return
    if not service.status:
        await ctx.reply(ctx.t("service_stopped", note=service.note or ""))
        return
    ctx.session.selected_service = kind.value
    ctx.session.clear_pending()
    log.info("service_selected", service=kind.value)
    await ctx.reply(ctx.t(catalog.policy_for(kind).upload_prompt_key))


async def profile(ctx: ChatContext) -> None:
    name = ctx.user.first_name or ctx.user.username or str(ctx.user.chat_user_id)
    await ctx.reply(
        ctx.t("profile", name=name, credit=ctx.user.credit),
        keyboards.buy_credit(ctx),
    )


async def show_help(ctx: ChatContext) -> None:
    await ctx.reply(ctx.t("help"), keyboards.home(ctx))


async def upload_essay(ctx: ChatContext) -> None:
    if catalog.parse_kind(ctx.session.selected_service) is None:
        await ctx.reply(ctx.t("select_service_first"), await keyboards.main_menu(ctx))
        return
    await ctx.reply(ctx.t("upload_essay"))


async def unknown(ctx: ChatContext) -> None:
    await ctx.reply(ctx.t("unknown_update"), await keyboards.main_menu(ctx))


def register(dp: Dispatcher) -> None:
    dp.command("start")(start)
    dp.command("menu")(send_main_menu)
    dp.command("profile")(profile)
    dp.command("help")(show_help)
    dp.callback("home")(send_main_menu)
    dp.callback(_SERVICE_PATTERN)(select_service)
    dp.callback("profile")(profile)
    dp.callback("help")(show_help)
    dp.callback("upload_essay")(upload_essay)
    dp.fallback(unknown)
