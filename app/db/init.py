import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.conversation_session import ConversationSession
from app.models.credit_ledger import CreditLedgerEntry
from app.models.credit_purchase import CreditPurchase
from app.models.feedback import Feedback
from app.models.score_log import ScoreLogEntry
from app.models.service import Service
from app.models.upload import EssayUpload
from app.models.user import User

DOCUMENT_MODELS = [
    User,
    EssayUpload,
    ScoreLogEntry,
    CreditLedgerEntry,
    CreditPurchase,
    ConversationSession,
    Service,
    Feedback,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true)."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database=None) -> None:
    """Bind Beanie to the configured database, or to the one given (tests pass an in-memory db)."""
    if database is None:
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
