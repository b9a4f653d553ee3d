"""Conversation sessions persisted per chat, and per-chat serialization of updates."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from app.models.conversation_session import ConversationSession


async def load_session(chat_id: int) -> ConversationSession:
    session = await ConversationSession.find_one(ConversationSession.chat_id == chat_id)
    return session or ConversationSession(chat_id=chat_id)


async def save_session(session: ConversationSession) -> None:
    session.updated_at = datetime.utcnow()
    await session.save()


class ChatLocks:
    """One asyncio.Lock per chat; different chats run concurrently."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._waiters: dict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, chat_id: int) -> AsyncIterator[None]:
        self._waiters[chat_id] += 1
        try:
            async with self._locks[chat_id]:
                yield
        finally:
            self._waiters[chat_id] -= 1
            if self._waiters[chat_id] == 0:
                del self._waiters[chat_id]
                self._locks.pop(chat_id, None)
