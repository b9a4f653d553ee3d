from datetime import datetime

from beanie import PydanticObjectId

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.user import User

log = get_logger(__name__)


async def upsert_user_from_chat(
    chat_user_id: int,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    language_code: str | None = None,
) -> User:
    """Create the user on first contact; refresh profile fields afterwards. Never touches credit."""
    user = await User.find_one(User.chat_user_id == chat_user_id)
    if user:
        changes = {
            User.username: username,
            User.first_name: first_name,
            User.last_name: last_name,
            User.updated_at: datetime.utcnow(),
        }
        if language_code:
            changes[User.language_code] = language_code
        await user.set(changes)
        return user
    user = User(
        chat_user_id=chat_user_id,
        username=username,
        first_name=first_name,
        last_name=last_name,
        language_code=language_code or "en",
    )
    await user.insert()
    log.info("user_created", user_id=str(user.id), chat_user_id=chat_user_id)
    return user


async def get_by_chat_id(chat_user_id: int) -> User | None:
    return await User.find_one(User.chat_user_id == chat_user_id)


async def get_user(user_id: PydanticObjectId) -> User:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def set_customer_id(user: User, customer_id: str) -> None:
    await user.set({User.customer_id: customer_id, User.updated_at: datetime.utcnow()})
