"""Inline button layouts shared by the chat workflows."""

from beanie import PydanticObjectId

from app.bot.dispatcher import ChatContext
from app.bot.transport import Button
from app.services import catalog


async def main_menu(ctx: ChatContext) -> list[list[Button]]:
    rows = []
    for service in await catalog.list_services():
        mark = "✅" if service.status else "❌"
        label = ctx.t("service_label", mark=mark, name=service.name.title())
        rows.append([Button(text=label, callback_data=service.button_id)])
    rows.append([
        Button(text=ctx.t("button_profile"), callback_data="profile"),
        Button(text=ctx.t("button_feedback"), callback_data="feedback"),
    ])
    rows.append([Button(text=ctx.t("button_help"), callback_data="help")])
    return rows


def home(ctx: ChatContext) -> list[list[Button]]:
    return [[Button(text=ctx.t("button_home"), callback_data="home")]]


def confirm_scan(ctx: ChatContext, upload_id: PydanticObjectId) -> list[list[Button]]:
    return [[
        Button(text=ctx.t("button_confirm"), callback_data=f"originality_confirm_{upload_id}"),
        Button(text=ctx.t("button_cancel"), callback_data=f"originality_cancel_{upload_id}"),
    ]]


def buy_credit(ctx: ChatContext) -> list[list[Button]]:
    return [[Button(text=ctx.t("button_buy_credit"), callback_data="buy_credit")]]


def scan_result(ctx: ChatContext, public_link: str | None) -> list[list[Button]]:
    rows = []
    if public_link:
        rows.append([Button(text=ctx.t("button_report"), url=public_link)])
    return rows + home(ctx)
