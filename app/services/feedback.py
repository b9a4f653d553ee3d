from beanie import PydanticObjectId

from app.core.exceptions import BadRequestError
from app.models.feedback import Feedback

RATINGS = ("good", "bad")


async def save_feedback(user_id: PydanticObjectId, rating: str, message: str | None = None) -> Feedback:
    if rating not in RATINGS:
        raise BadRequestError(f"Invalid rating: {rating}")
    entry = Feedback(user_id=user_id, rating=rating, message=(message or "").strip() or None)
    await entry.insert()
    return entry
