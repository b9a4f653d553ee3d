"""Feedback flow: rating, then an optional message."""

from app.bot.dispatcher import ChatContext, Dispatcher
from app.bot.transport import Button
from app.services import feedback as feedback_service
from app.workflows import keyboards


async def ask_rating(ctx: ChatContext) -> None:
    await ctx.reply(
        ctx.t("feedback_prompt"),
        [[
            Button(text=ctx.t("button_feedback_good"), callback_data="feedback_good"),
            Button(text=ctx.t("button_feedback_bad"), callback_data="feedback_bad"),
        ]],
    )


async def rate(ctx: ChatContext) -> None:
    ctx.session.feedback_rating = ctx.match.group(1)
    ctx.session.waiting_for_feedback_message = True
    await ctx.reply(
        ctx.t("feedback_message_prompt"),
        [[
            Button(text=ctx.t("button_skip"), callback_data="feedback_skip"),
            Button(text=ctx.t("button_exit"), callback_data="feedback_exit"),
        ]],
    )


async def _finish(ctx: ChatContext, message: str | None) -> None:
    rating = ctx.session.feedback_rating
    ctx.session.feedback_rating = None
    ctx.session.waiting_for_feedback_message = False
    if rating:
        await feedback_service.save_feedback(ctx.user.id, rating, message)
    await ctx.reply(ctx.t("feedback_thanks"), keyboards.home(ctx))


async def skip(ctx: ChatContext) -> None:
    await _finish(ctx, None)


async def exit_feedback(ctx: ChatContext) -> None:
    ctx.session.feedback_rating = None
    ctx.session.waiting_for_feedback_message = False
    await ctx.reply(ctx.t("welcome", name=ctx.user.first_name or ""), await keyboards.main_menu(ctx))


async def message_text(ctx: ChatContext) -> bool:
    if not ctx.session.waiting_for_feedback_message:
        return False
    await _finish(ctx, ctx.update.text)
    return True


def register(dp: Dispatcher) -> None:
    dp.callback("feedback")(ask_rating)
    dp.callback("feedback_(good|bad)")(rate)
    dp.callback("feedback_skip")(skip)
    dp.callback("feedback_exit")(exit_feedback)
    dp.text(message_text)
