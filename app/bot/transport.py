"""
Contract between the service and the chat connector.

The connector posts one Update per inbound event and relays the returned
actions in order. Message ids in actions are local references: `send` actions
are numbered from 1 within one response and `delete` refers to those numbers.
"""

from typing import Protocol

import httpx
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.exceptions import StorageError
from app.core.logging import get_logger

log = get_logger(__name__)


class ChatUser(BaseModel):
    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    language_code: str | None = None


class DocumentAttachment(BaseModel):
    file_id: str
    download_url: str
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class Update(BaseModel):
    update_id: int
    chat_id: int
    user: ChatUser
    text: str | None = None
    callback_data: str | None = None
    document: DocumentAttachment | None = None

    @property
    def command(self) -> tuple[str, str] | None:
        """('/start', 'payload') for command messages, else None."""
        if not self.text or not self.text.startswith("/"):
            return None
        name, _, arg = self.text.strip().partition(" ")
        return name.split("@", 1)[0].lower(), arg.strip()


class Button(BaseModel):
    text: str
    callback_data: str | None = None
    url: str | None = None


class OutboundAction(BaseModel):
    type: str  # send | delete
    chat_id: int
    message_id: int
    text: str | None = None
    parse_mode: str | None = None
    buttons: list[list[Button]] = Field(default_factory=list)


class Conversation(Protocol):
    chat_id: int

    async def send(self, text: str, buttons: list[list[Button]] | None = None) -> int: ...

    async def delete(self, message_id: int) -> None: ...


class BufferedConversation:
    """Collects outbound actions for one update; returned to the connector as the response."""

    def __init__(self, chat_id: int) -> None:
        self.chat_id = chat_id
        self.actions: list[OutboundAction] = []
        self._next_id = 1

    async def send(self, text: str, buttons: list[list[Button]] | None = None) -> int:
        message_id = self._next_id
        self._next_id += 1
        self.actions.append(
            OutboundAction(
                type="send",
                chat_id=self.chat_id,
                message_id=message_id,
                text=text,
                parse_mode="HTML",
                buttons=buttons or [],
            )
        )
        return message_id

    async def delete(self, message_id: int) -> None:
        self.actions.append(OutboundAction(type="delete", chat_id=self.chat_id, message_id=message_id))

    @property
    def texts(self) -> list[str]:
        return [a.text for a in self.actions if a.type == "send" and a.text]


class HttpDownloader:
    """Fetch attachment bytes from the connector-provided URL."""

    def __init__(self, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout if timeout is not None else get_settings().download_timeout_seconds
        self._transport = transport

    async def __call__(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            log.warning("document_download_failed", error=str(e))
            raise StorageError("Could not download document") from e
