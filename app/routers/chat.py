from fastapi import APIRouter, Depends

from app.bot.dispatcher import Dispatcher
from app.bot.transport import OutboundAction, Update
from app.deps import get_dispatcher, require_chat_secret

router = APIRouter()


@router.post("/updates", dependencies=[Depends(require_chat_secret)])
async def chat_update(update: Update, dispatcher: Dispatcher = Depends(get_dispatcher)) -> dict:
    """Handle one inbound chat update; the connector relays the returned actions in order."""
    actions: list[OutboundAction] = await dispatcher.dispatch(update)
    return {"actions": [a.model_dump(exclude_none=True) for a in actions]}
