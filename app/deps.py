"""Shared FastAPI dependencies."""

from fastapi import Header, Request

from app.bot.dispatcher import Dispatcher
from app.core.config import get_settings
from app.core.exceptions import UnauthorizedError
from app.core.security import require_shared_secret


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


async def require_chat_secret(
    x_chat_secret: str | None = Header(default=None, alias="X-Chat-Webhook-Secret"),
) -> None:
    """Dependency: connector requests must carry the shared webhook secret."""
    require_shared_secret(x_chat_secret, get_settings().chat_webhook_secret, "webhook secret")


async def require_admin(
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """Dependency: operator endpoints are closed unless ADMIN_API_KEY is configured and matches."""
    expected = get_settings().admin_api_key
    if not expected:
        raise UnauthorizedError("Admin API disabled")
    require_shared_secret(x_admin_key, expected, "admin key")
