from datetime import datetime

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field


class ConversationSession(Document):
    """Per-chat scratch state. A cache of the workflow position, never the source of truth."""
    chat_id: Indexed(int, unique=True)
    user_id: PydanticObjectId | None = None
    selected_service: str | None = None
    pending_upload_id: PydanticObjectId | None = None
    pending_word_count: int | None = None
    pending_credits_required: int | None = None
    waiting_for_credit_amount: bool = False
    waiting_for_feedback_message: bool = False
    feedback_rating: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "conversation_sessions"

    def clear_pending(self) -> None:
        self.pending_upload_id = None
        self.pending_word_count = None
        self.pending_credits_required = None

    def set_pending(self, upload_id: PydanticObjectId, word_count: int, credits_required: int) -> None:
        self.pending_upload_id = upload_id
        self.pending_word_count = word_count
        self.pending_credits_required = credits_required
