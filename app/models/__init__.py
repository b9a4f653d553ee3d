from app.models.user import User
from app.models.upload import EssayUpload
from app.models.score_log import ScoreLogEntry
from app.models.credit_ledger import CreditLedgerEntry
from app.models.credit_purchase import CreditPurchase
from app.models.conversation_session import ConversationSession
from app.models.service import Service
from app.models.feedback import Feedback
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "EssayUpload",
    "ScoreLogEntry",
    "CreditLedgerEntry",
    "CreditPurchase",
    "ConversationSession",
    "Service",
    "Feedback",
    "AuditLog",
]
