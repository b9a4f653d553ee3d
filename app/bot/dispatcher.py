"""Route inbound chat updates to workflow handlers."""

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from app.bot.i18n import t
from app.bot.session import ChatLocks, load_session, save_session
from app.bot.transport import BufferedConversation, Button, Conversation, OutboundAction, Update
from app.core.exceptions import AppError
from app.core.logging import bind_chat_context, clear_chat_context, get_logger
from app.models.conversation_session import ConversationSession
from app.models.user import User
from app.services import users as users_service
from app.services.refunds import RefundPolicy
from app.services.scoring import OriginalityClient
from app.storage.base import StorageBackend

log = get_logger(__name__)

Downloader = Callable[[str], Awaitable[bytes]]


@dataclass
class BotDeps:
    storage: StorageBackend
    scoring: OriginalityClient
    download: Downloader
    refund_policy: RefundPolicy
    payments_client: Any = None  # razorpay.Client; created lazily when None


@dataclass
class ChatContext:
    update: Update
    conversation: Conversation
    session: ConversationSession
    user: User
    deps: BotDeps
    match: re.Match | None = None

    @property
    def lang(self) -> str:
        return self.user.language_code

    def t(self, key: str, **params: Any) -> str:
        return t(key, self.lang, **params)

    async def reply(self, text: str, buttons: list[list[Button]] | None = None) -> int:
        return await self.conversation.send(text, buttons)


Handler = Callable[[ChatContext], Awaitable[None]]
TextHandler = Callable[[ChatContext], Awaitable[bool]]


@dataclass
class Dispatcher:
    deps: BotDeps
    _commands: dict[str, Handler] = field(default_factory=dict)
    _callbacks: list[tuple[re.Pattern, Handler]] = field(default_factory=list)
    _documents: list[Handler] = field(default_factory=list)
    _texts: list[TextHandler] = field(default_factory=list)
    _fallback: Handler | None = None
    _locks: ChatLocks = field(default_factory=ChatLocks)

    def command(self, name: str) -> Callable[[Handler], Handler]:
        def decorator(fn: Handler) -> Handler:
            self._commands[name if name.startswith("/") else f"/{name}"] = fn
            return fn
        return decorator

    def callback(self, pattern: str) -> Callable[[Handler], Handler]:
        """Register a handler for button presses whose data fully matches the regex."""
        def decorator(fn: Handler) -> Handler:
            self._callbacks.append((re.compile(pattern), fn))
            return fn
        return decorator

    def document(self, fn: Handler) -> Handler:
        self._documents.append(fn)
        return fn

    def text(self, fn: TextHandler) -> TextHandler:
        """Text handlers run in registration order until one returns True."""
        self._texts.append(fn)
        return fn

    def fallback(self, fn: Handler) -> Handler:
        self._fallback = fn
        return fn

    def _resolve(self, update: Update) -> tuple[Handler | None, re.Match | None]:
        if update.callback_data is not None:
            for pattern, fn in self._callbacks:
                m = pattern.fullmatch(update.callback_data)
                if m:
                    return fn, m
            return None, None
        if update.document is not None:
            return (self._documents[0] if self._documents else None), None
        cmd = update.command
        if cmd and cmd[0] in self._commands:
            return self._commands[cmd[0]], None
        return None, None

    async def _load_user(self, update: Update) -> User:
        cmd = update.command
        if cmd and cmd[0] == "/start":
            return await self._upsert(update)
        user = await users_service.get_by_chat_id(update.user.id)
        return user or await self._upsert(update)

    @staticmethod
    async def _upsert(update: Update) -> User:
        u = update.user
        return await users_service.upsert_user_from_chat(
            u.id, u.username, u.first_name, u.last_name, u.language_code
        )

    async def dispatch(self, update: Update) -> list[OutboundAction]:
        conversation = BufferedConversation(update.chat_id)
        async with self._locks.hold(update.chat_id):
            bind_chat_context(update.chat_id, update.update_id)
            try:
                await self._handle(update, conversation)
            finally:
                clear_chat_context()
        return conversation.actions

    async def _handle(self, update: Update, conversation: BufferedConversation) -> None:
        user = await self._load_user(update)
        session = await load_session(update.chat_id)
        session.user_id = user.id
        handler, match = self._resolve(update)
        ctx = ChatContext(update, conversation, session, user, self.deps, match)
        try:
            if handler is not None:
                await handler(ctx)
            elif not await self._run_text_handlers(ctx):
                if self._fallback is not None:
                    await self._fallback(ctx)
        except AppError as e:
            log.warning("update_failed", code=e.code, error=e.message)
            await ctx.reply(ctx.t("generic_error"))
        except Exception:
            log.exception("update_crashed")
            await ctx.reply(ctx.t("generic_error"))
        finally:
            await save_session(session)

    async def _run_text_handlers(self, ctx: ChatContext) -> bool:
        if ctx.update.text is None or ctx.update.command is not None:
            return False
        for fn in self._texts:
            if await fn(ctx):
                return True
        return False
