# Chat workflows
from app.bot.dispatcher import BotDeps, Dispatcher
from app.workflows import credit, feedback, menu, upload


def build_dispatcher(deps: BotDeps) -> Dispatcher:
    dp = Dispatcher(deps)
    upload.register(dp)
    credit.register(dp)
    feedback.register(dp)
    menu.register(dp)
    return dp


__all__ = ["build_dispatcher"]
