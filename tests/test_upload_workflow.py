"""Upload-to-analysis scenarios driven through the chat dispatcher."""

import pytest

from app.bot.i18n import t
from app.models.conversation_session import ConversationSession
from app.models.credit_ledger import CreditLedgerEntry
from app.models.score_log import ScoreLogEntry
from app.models.upload import EssayUpload
from app.models.user import User
from app.services import credits as credits_service
from app.services.catalog import ServiceKind
from app.services.refunds import RefundOnScoringFailure
from tests.conftest import CHAT_ID, make_docx, texts, words

pytestmark = pytest.mark.asyncio

ORIGINALITY = ServiceKind.ORIGINALITY.value
TURNITIN = ServiceKind.TURNITIN.value


async def _session() -> ConversationSession | None:
    return await ConversationSession.find_one(ConversationSession.chat_id == CHAT_ID)


async def _balance(user: User) -> int:
    return await credits_service.get_balance(user.id)


async def _only_upload() -> EssayUpload:
    uploads = await EssayUpload.find_all().to_list()
    assert len(uploads) == 1
    return uploads[0]


def _button_data(actions) -> list[str]:
    return [b.callback_data for a in actions for row in a.buttons for b in row if b.callback_data]


async def test_confirmed_scan_debits_and_reports(chat, services, make_user, scan_stub, storage):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)

    actions = await chat.document(make_docx(words(2500)), file_name="essay.docx")
    upload = await _only_upload()
    assert upload.status == "queued"
    assert upload.payment_status == "not_paid"
    assert upload.word_count == 2500
    assert upload.credits_required == 1
    assert upload.file_path.startswith(f"essays/{CHAT_ID}/")
    assert upload.file_path.endswith("_essay.docx")
    assert (storage.root / "essays" / upload.file_path).exists()
    assert "Credits required: <b>1</b>" in texts(actions)[0]
    assert f"originality_confirm_{upload.id}" in _button_data(actions)

    session = await _session()
    assert session.pending_upload_id == upload.id
    assert session.pending_word_count == 2500
    assert session.pending_credits_required == 1
    assert await _balance(user) == 5  # nothing charged before confirmation

    actions = await chat.press(f"originality_confirm_{upload.id}")
    sent = [a for a in actions if a.type == "send"]
    deleted = [a for a in actions if a.type == "delete"]
    assert sent[0].text == t("processing")
    assert [d.message_id for d in deleted] == [sent[0].message_id]
    result = sent[-1].text
    assert "AI score: <b>25.00%</b>" in result
    assert "Original score: <b>75.00%</b>" in result
    assert "Confidence: <b>90.00%</b>" in result
    assert "Remaining credits: 4" in result
    assert any(b.url for row in sent[-1].buttons for b in row)

    assert await _balance(user) == 4
    upload = await EssayUpload.get(upload.id)
    assert (upload.status, upload.payment_status) == ("completed", "paid")
    log = await ScoreLogEntry.find_one(ScoreLogEntry.upload_id == upload.id)
    assert log.status == "completed"
    assert log.ai_score == 0.25
    assert log.credits_used == 1
    assert "content" not in log.request_data
    ledger = await CreditLedgerEntry.find_one(CreditLedgerEntry.user_id == user.id)
    assert (ledger.amount, ledger.reason, ledger.upload_id) == (-1, "originality_scan", upload.id)

    session = await _session()
    assert session.pending_upload_id is None
    assert (await User.get(user.id)).analyzing_status is False
    assert len(scan_stub.requests) == 1
    assert scan_stub.bodies[0]["content"] == words(2500)


async def test_insufficient_credit_then_resume_after_purchase(chat, services, make_user):
    user = await make_user(credit=0)
    await chat.press(ORIGINALITY)
    actions = await chat.document(make_docx(words(7000)))
    upload = await _only_upload()
    assert upload.credits_required == 3
    assert upload.payment_status == "not_paid"
    assert "buy_credit" in _button_data(actions)
    assert "needs <b>3</b> credit(s) but you have <b>0</b>" in texts(actions)[0]
    assert (await _session()).pending_upload_id == upload.id

    await credits_service.credit(user.id, 10, "purchase", idempotency_key="razorpay_pay_b")
    actions = await chat.text(f"/start payment_success_{upload.id}")
    assert f"originality_confirm_{upload.id}" in _button_data(actions)

    await chat.press(f"originality_confirm_{upload.id}")
    assert await _balance(user) == 7
    assert (await EssayUpload.get(upload.id)).payment_status == "paid"


async def test_resume_after_session_lost(chat, services, make_user):
    user = await make_user(credit=0)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(6001)))
    upload = await _only_upload()
    await (await _session()).delete()

    await credits_service.credit(user.id, 3, "purchase")
    actions = await chat.text(f"/start payment_success_{upload.id}")
    assert "Credits required: <b>3</b>" in texts(actions)[0]
    session = await _session()
    assert session.pending_upload_id == upload.id
    assert session.pending_credits_required == 3

    await chat.press(f"originality_confirm_{upload.id}")
    assert await _balance(user) == 0


async def test_resume_before_payment_arrives(chat, services, make_user):
    await make_user(credit=0)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(10)))
    actions = await chat.text("/start credit_purchase_success")
    assert texts(actions) == [t("payment_pending")]


async def test_format_mismatch_changes_nothing(chat, services, make_user, storage):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    actions = await chat.document(b"%PDF-1.4", file_name="essay.pdf", mime_type="application/pdf")
    assert texts(actions) == [t("originality_format_error")]
    await chat.press(TURNITIN)
    actions = await chat.document(make_docx(words(5)), file_name="old.doc", mime_type="application/msword")
    assert texts(actions) == [t("turnitin_format_error")]

    assert await EssayUpload.count() == 0
    assert not (storage.root / "essays").exists()
    assert (await User.get(user.id)).analyzing_status is False


async def test_legacy_doc_is_scored(chat, services, make_user, scan_stub, legacy_docs):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    body = legacy_docs("Legacy essay " + words(3198) + "\r")

    actions = await chat.document(body, file_name="old.doc", mime_type="application/msword")
    upload = await _only_upload()
    assert (upload.word_count, upload.credits_required) == (3200, 2)
    assert f"originality_confirm_{upload.id}" in _button_data(actions)

    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert "AI score: <b>25.00%</b>" in texts(actions)[-1]
    assert scan_stub.bodies[0]["content"].startswith("Legacy essay word word")
    assert await _balance(user) == 3
    assert (await EssayUpload.get(upload.id)).status == "completed"


async def test_confirm_replay_is_rejected(chat, services, make_user, scan_stub):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()
    await chat.press(f"originality_confirm_{upload.id}")

    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert texts(actions) == [t("already_processed")]
    assert await _balance(user) == 4
    assert len(scan_stub.requests) == 1
    assert await ScoreLogEntry.count() == 1


async def test_scoring_failure_without_refund(chat, services, make_user, scan_stub):
    user = await make_user(credit=5)
    scan_stub.status_code = 500
    scan_stub.payload = "upstream exploded"
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()

    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert t("scoring_failed") in texts(actions)
    assert "upstream exploded" not in " ".join(texts(actions))
    assert await _balance(user) == 4
    log = await ScoreLogEntry.find_one(ScoreLogEntry.upload_id == upload.id)
    assert log.status == "failed"
    assert log.error_message == "upstream exploded"
    assert log.credits_refunded is False
    upload = await EssayUpload.get(upload.id)
    assert upload.payment_status == "not_paid"
    assert (await User.get(user.id)).analyzing_status is False


async def test_scoring_failure_with_refund_policy(chat, services, make_user, scan_stub, bot_deps):
    bot_deps.refund_policy = RefundOnScoringFailure()
    user = await make_user(credit=5)
    scan_stub.status_code = 502
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(3500)))
    upload = await _only_upload()

    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert t("scoring_failed_refunded", credits=2) in texts(actions)
    assert await _balance(user) == 5
    log = await ScoreLogEntry.find_one(ScoreLogEntry.upload_id == upload.id)
    assert log.credits_refunded is True
    reasons = [e.reason for e in await CreditLedgerEntry.find_all().sort("+_id").to_list()]
    assert reasons == ["originality_scan", "refund"]


async def test_retry_after_failure_succeeds(chat, services, make_user, scan_stub):
    await make_user(credit=5)
    scan_stub.status_code = 500
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()
    await chat.press(f"originality_confirm_{upload.id}")

    scan_stub.status_code = 200
    await chat.press(f"originality_confirm_{upload.id}")
    latest = await ScoreLogEntry.find(ScoreLogEntry.upload_id == upload.id).sort("-_id").first_or_none()
    assert latest.status == "completed"
    assert (await EssayUpload.get(upload.id)).status == "completed"


async def test_cancel_clears_session_without_charge(chat, services, make_user):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()

    actions = await chat.press(f"originality_cancel_{upload.id}")
    assert texts(actions) == [t("cancelled")]
    assert (await _session()).pending_upload_id is None
    assert await _balance(user) == 5
    assert await EssayUpload.get(upload.id) is not None


async def test_busy_user_is_turned_away(chat, services, make_user):
    from datetime import datetime

    await make_user(credit=5, analyzing_status=True, analyzing_started_at=datetime.utcnow())
    await chat.press(ORIGINALITY)
    actions = await chat.document(make_docx(words(100)))
    assert texts(actions) == [t("already_analyzing")]
    assert await EssayUpload.count() == 0


async def test_document_without_service_selection(chat, services, make_user):
    await make_user(credit=5)
    actions = await chat.document(make_docx(words(100)))
    assert texts(actions) == [t("select_service_first")]
    assert ORIGINALITY in _button_data(actions)
    assert await EssayUpload.count() == 0


async def test_stopped_service_blocks_upload(chat, services, make_user):
    from app.services import catalog

    await make_user(credit=5)
    await chat.press(ORIGINALITY)
    await catalog.set_status("originality", False, "paused")
    actions = await chat.document(make_docx(words(100)))
    assert texts(actions) == [t("service_unavailable")]
    assert await EssayUpload.count() == 0


async def test_unreadable_document(chat, services, make_user):
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    actions = await chat.document(make_docx(""))
    assert texts(actions) == [t("extraction_failed")]
    assert await EssayUpload.count() == 0
    assert (await User.get(user.id)).analyzing_status is False
    assert await _balance(user) == 5
    assert await CreditLedgerEntry.count() == 0
    assert await ScoreLogEntry.count() == 0


async def test_turnitin_charges_on_upload(chat, services, make_user, scan_stub):
    user = await make_user(credit=3)
    await chat.press(TURNITIN)
    actions = await chat.document(make_docx(words(9000)), file_name="report.docx")
    upload = await _only_upload()
    assert upload.service == TURNITIN
    assert upload.payment_status == "paid"
    assert upload.credits_required == 1
    assert await _balance(user) == 2
    text = texts(actions)[0]
    assert "report.docx" in text and str(upload.id) in text and "Remaining credits: 2" in text
    assert scan_stub.requests == []
    ledger = await CreditLedgerEntry.find_one(CreditLedgerEntry.user_id == user.id)
    assert ledger.reason == "document_upload"
    assert ledger.description == "Document upload: report.docx"


async def test_turnitin_without_credit(chat, services, make_user):
    await make_user(credit=0)
    await chat.press(TURNITIN)
    actions = await chat.document(make_docx(words(10)))
    assert "buy_credit" in _button_data(actions)
    assert await EssayUpload.count() == 0


async def test_confirm_for_someone_elses_upload(chat, services, make_user):
    other = await make_user(credit=5, chat_user_id=2002)
    from app.services import uploads as uploads_service

    upload = await uploads_service.create_upload(other.id, ORIGINALITY, "x.docx", 10, "essays/2002/x.docx", None, 10, 1)
    await make_user(credit=5)
    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert texts(actions) == [t("upload_not_found")]
    assert await _balance(other) == 5


async def test_failed_debit_settles_score_log(chat, services, make_user, scan_stub, monkeypatch):
    from app.core.exceptions import InsufficientCreditError

    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()

    async def balance_moved(*args, **kwargs):
        raise InsufficientCreditError(required=1, available=0)

    monkeypatch.setattr(credits_service, "debit", balance_moved)
    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert t("insufficient_credit", credits_required=1, balance=0) in texts(actions)
    assert any(a.type == "delete" for a in actions)
    log = await ScoreLogEntry.find_one(ScoreLogEntry.upload_id == upload.id)
    assert log.status == "failed"
    assert (await EssayUpload.get(upload.id)).status == "queued"
    assert (await User.get(user.id)).analyzing_status is False
    assert scan_stub.requests == []


async def test_crash_after_scan_settles_score_log(chat, services, make_user, scan_stub, monkeypatch):
    from app.services import score_logs

    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    await chat.document(make_docx(words(100)))
    upload = await _only_upload()

    async def db_down(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(score_logs, "mark_completed", db_down)
    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert texts(actions)[-1] == t("generic_error")
    log = await ScoreLogEntry.find_one(ScoreLogEntry.upload_id == upload.id)
    assert (log.status, log.error_message) == ("failed", "database went away")
    assert (await EssayUpload.get(upload.id)).status == "queued"
    assert await _balance(user) == 4
    assert (await User.get(user.id)).analyzing_status is False


async def test_storage_failure_on_upload(chat, services, make_user, bot_deps):
    from app.storage.local import LocalStorage

    class FullDisk(LocalStorage):
        async def put(self, bucket, key, body, content_type=None):
            raise OSError(28, "No space left on device")

    bot_deps.storage = FullDisk(bot_deps.storage.root)
    user = await make_user(credit=5)
    await chat.press(ORIGINALITY)
    actions = await chat.document(make_docx(words(100)))
    assert texts(actions) == [t("storage_failed")]
    assert await EssayUpload.count() == 0
    assert (await User.get(user.id)).analyzing_status is False


async def test_confirm_rejects_flat_priced_upload(chat, services, make_user, scan_stub):
    from app.services import uploads as uploads_service

    user = await make_user(credit=5)
    upload = await uploads_service.create_upload(user.id, TURNITIN, "x.docx", 10, "essays/1001/x.docx", None, 10, 1)
    actions = await chat.press(f"originality_confirm_{upload.id}")
    assert texts(actions) == [t("upload_not_found")]
    assert scan_stub.requests == []
    assert await _balance(user) == 5
    assert await ScoreLogEntry.count() == 0
