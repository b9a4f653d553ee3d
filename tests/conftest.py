import io
import itertools
import json
import os
import struct
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from docx import Document as DocxDocument
from httpx import ASGITransport, AsyncClient

# Settings are cached on first use; set test values before any app import
os.environ.setdefault("MONGODB_DB_NAME", "essaybot_test")
os.environ.setdefault("CHAT_WEBHOOK_SECRET", "test-chat-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("ORIGINALITY_API_KEY", "test-oai-key")
os.environ.setdefault("BOT_USERNAME", "essay_test_bot")

CHAT_ID = 1001
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def make_docx(*paragraphs: str) -> bytes:
    doc = DocxDocument()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def make_word_streams(text: str, compressed: bool = True, which_table: int = 1) -> tuple[bytes, dict[str, bytes]]:
    """Minimal Word 97 WordDocument stream plus table stream holding a one-piece CLX."""
    csw, cslw, cb_rg_fc_lcb = 14, 22, 0x5D
    text_offset = 1024
    encoded = text.encode("cp1252") if compressed else text.encode("utf-16-le")
    word = bytearray(text_offset + len(encoded))
    struct.pack_into("<H", word, 0, 0xA5EC)
    struct.pack_into("<H", word, 0x0A, 0x0200 if which_table else 0)
    struct.pack_into("<H", word, 32, csw)
    pos = 34 + csw * 2
    struct.pack_into("<H", word, pos, cslw)
    struct.pack_into("<i", word, pos + 2 + 12, len(text))  # ccpText
    pos = pos + 2 + cslw * 4
    struct.pack_into("<H", word, pos, cb_rg_fc_lcb)

    fc = (text_offset * 2) | 0x40000000 if compressed else text_offset
    plc = struct.pack("<II", 0, len(text)) + struct.pack("<HIH", 0, fc, 0)
    prc = b"\x01" + struct.pack("<h", 2) + b"\x00\x00"
    clx = prc + b"\x02" + struct.pack("<I", len(plc)) + plc
    table = b"\x00" * 16 + clx
    struct.pack_into("<II", word, pos + 2 + 33 * 8, 16, len(clx))
    word[text_offset:] = encoded
    return bytes(word), {("1Table" if which_table else "0Table"): table}


def words(n: int) -> str:
    return " ".join(["word"] * n)


def scan_payload(ai: float = 0.25, confidence: float = 0.9, link: str | None = "https://app.originality.ai/share/abc") -> dict:
    return {
        "results": {
            "ai": {"classification": {"AI": ai, "Original": 1 - ai}, "confidence": {"AI": confidence}},
            "properties": {"id": 4242, "publicLink": link},
        }
    }


class ScanStub:
    """httpx.MockTransport handler standing in for the scan endpoint."""

    def __init__(self) -> None:
        self.status_code = 200
        self.payload: dict | str = scan_payload()
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.payload, str):
            return httpx.Response(self.status_code, text=self.payload)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


class FakeDownloader:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self._ids = itertools.count(1)

    def add(self, content: bytes) -> str:
        url = f"https://files.test/{next(self._ids)}"
        self.files[url] = content
        return url

    async def __call__(self, url: str) -> bytes:
        return self.files[url]


@pytest_asyncio.fixture
async def db():
    from mongomock_motor import AsyncMongoMockClient

    from app.db.init import init_db

    database = AsyncMongoMockClient()["essaybot_test"]
    await init_db(database)
    yield database


@pytest_asyncio.fixture
async def services(db):
    from app.services.catalog import seed_services

    await seed_services()


@pytest_asyncio.fixture
async def make_user(db):
    from app.models.user import User

    async def _make(credit: int = 0, chat_user_id: int = CHAT_ID, **kw) -> User:
        user = User(chat_user_id=chat_user_id, first_name="Ada", username="ada", credit=credit, **kw)
        await user.insert()
        return user

    return _make


@pytest.fixture
def scan_stub() -> ScanStub:
    return ScanStub()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def storage(tmp_path):
    from app.storage.local import LocalStorage

    return LocalStorage(tmp_path / "storage")


@pytest.fixture
def bot_deps(storage, scan_stub, downloader):
    from app.bot.dispatcher import BotDeps
    from app.services.refunds import NoRefund
    from app.services.scoring import OriginalityClient

    return BotDeps(
        storage=storage,
        scoring=OriginalityClient(api_key="test-oai-key", transport=httpx.MockTransport(scan_stub)),
        download=downloader,
        refund_policy=NoRefund(),
    )


@pytest.fixture
def dispatcher(bot_deps):
    from app.workflows import build_dispatcher

    return build_dispatcher(bot_deps)


class ChatDriver:
    """Builds updates for one chat and runs them through the dispatcher."""

    def __init__(self, dispatcher, downloader: FakeDownloader, chat_id: int = CHAT_ID) -> None:
        self.dispatcher = dispatcher
        self.downloader = downloader
        self.chat_id = chat_id
        self._update_ids = itertools.count(1)

    def _base(self) -> dict:
        return {
            "update_id": next(self._update_ids),
            "chat_id": self.chat_id,
            "user": {"id": self.chat_id, "first_name": "Ada", "username": "ada", "language_code": "en"},
        }

    async def _run(self, **fields):
        from app.bot.transport import Update

        return await self.dispatcher.dispatch(Update(**self._base(), **fields))

    async def text(self, text: str):
        return await self._run(text=text)

    async def press(self, data: str):
        return await self._run(callback_data=data)

    async def document(self, content: bytes, file_name: str = "essay.docx", mime_type: str | None = DOCX_MIME):
        url = self.downloader.add(content)
        return await self._run(
            document={
                "file_id": url.rsplit("/", 1)[-1],
                "download_url": url,
                "file_name": file_name,
                "mime_type": mime_type,
                "file_size": len(content),
            }
        )


@pytest.fixture
def chat(dispatcher, downloader) -> ChatDriver:
    return ChatDriver(dispatcher, downloader)


def texts(actions) -> list[str]:
    return [a.text for a in actions if a.type == "send"]


@pytest_asyncio.fixture
async def client(dispatcher) -> AsyncGenerator[AsyncClient, None]:
    from app.main import app

    app.state.dispatcher = dispatcher
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class FakeOleFile:
    """Stands in for olefile.OleFileIO over streams built by make_word_streams."""

    def __init__(self, streams: dict[str, bytes]) -> None:
        self.streams = streams

    def __enter__(self) -> "FakeOleFile":
        return self

    def __exit__(self, *exc) -> bool:
        return False

    def exists(self, name: str) -> bool:
        return name in self.streams

    def openstream(self, name: str) -> io.BytesIO:
        return io.BytesIO(self.streams[name])


@pytest.fixture
def legacy_docs(monkeypatch):
    """Returns a factory of .doc bodies whose OLE streams hold the given text."""
    from app.services import extraction

    files: dict[bytes, dict[str, bytes]] = {}

    def open_ole(fileobj):
        content = fileobj.read()
        if content not in files:
            raise OSError("not an OLE2 structured storage file")
        return FakeOleFile(files[content])

    monkeypatch.setattr(extraction.olefile, "OleFileIO", open_ole)

    def _make(text: str) -> bytes:
        word, tables = make_word_streams(text)
        content = b"\xd0\xcf\x11\xe0legacy-" + str(len(files)).encode()
        files[content] = {"WordDocument": word, **tables}
        return content

    return _make
