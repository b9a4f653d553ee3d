"""
Upload-to-analysis workflow.

A document moves through validation, extraction, pricing and persistence in
one update, then waits for the user's confirmation (or a credit purchase)
before the debit and the scoring call. The persisted upload row and score log
are authoritative at every resume point; the chat session only mirrors them.
"""

from enum import Enum

from beanie import PydanticObjectId

from app.bot.dispatcher import ChatContext, Dispatcher
from app.core.exceptions import (
    AlreadyProcessedError,
    AppError,
    BusyError,
    EmptyDocumentError,
    ExtractionError,
    InsufficientCreditError,
    NotFoundError,
    ScoringApiError,
    ServiceUnavailableError,
    StorageError,
)
from app.core.logging import get_logger
from app.models.score_log import ScoreLogEntry
from app.models.upload import EssayUpload
from app.services import busy_lock, catalog, score_logs
from app.services import credits as credits_service
from app.services import uploads as uploads_service
from app.services.catalog import ServicePolicy
from app.services.extraction import DocumentFormat, detect_format, extract_text_async
from app.services.pricing import count_words
from app.workflows import keyboards

log = get_logger(__name__)


class Stage(str, Enum):
    AWAITING_SERVICE_SELECTION = "awaiting_service_selection"
    AWAITING_DOCUMENT = "awaiting_document"
    VALIDATING_FORMAT = "validating_format"
    CHECKING_BUSY_LOCK = "checking_busy_lock"
    EXTRACTING = "extracting"
    PRICING = "pricing"
    PERSISTING = "persisting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_CREDIT_PURCHASE = "awaiting_credit_purchase"
    DEBITING = "debiting"
    SCORING = "scoring"
    RECORDING = "recording"
    DELIVERING = "delivering"
    ERROR_RECOVERY = "error_recovery"


# One chat message per error category; raw error text never reaches the chat.
ERROR_MESSAGES: list[tuple[type[AppError], str]] = [
    (BusyError, "already_analyzing"),
    (AlreadyProcessedError, "already_processed"),
    (ExtractionError, "extraction_failed"),
    (EmptyDocumentError, "extraction_failed"),
    (ScoringApiError, "scoring_failed"),
    (StorageError, "storage_failed"),
    (ServiceUnavailableError, "service_unavailable"),
    (NotFoundError, "upload_not_found"),
]


def _stage(stage: Stage, **kw) -> None:
    log.info("upload_stage", stage=stage.value, **kw)


def format_file_size(size: int) -> str:
    kb = size / 1024
    if kb >= 1024:
        return f"{kb / 1024:.2f} MB"
    return f"{kb:.2f} KB"


def _percent(value: float) -> str:
    return f"{value * 100:.2f}"


async def _report_failure(ctx: ChatContext, exc: AppError, **kw) -> None:
    _stage(Stage.ERROR_RECOVERY, code=exc.code, error=exc.message, **kw)
    if isinstance(exc, InsufficientCreditError):
        await ctx.reply(
            ctx.t("insufficient_credit", credits_required=exc.required, balance=exc.available),
            keyboards.buy_credit(ctx),
        )
        return
    key = next((k for cls, k in ERROR_MESSAGES if isinstance(exc, cls)), "generic_error")
    await ctx.reply(ctx.t(key))


async def _send_prompt(
    ctx: ChatContext,
    upload: EssayUpload,
    word_count: int,
    credits_required: int,
    insufficient_key: str = "insufficient_credit",
) -> None:
    """Confirmation prompt when the balance covers the price, otherwise the buy-credits prompt."""
    balance = await credits_service.get_balance(ctx.user.id)
    ctx.session.set_pending(upload.id, word_count, credits_required)
    if balance >= credits_required:
        _stage(Stage.AWAITING_CONFIRMATION, upload_id=str(upload.id))
        await ctx.reply(
            ctx.t(
                "confirm_prompt",
                file_name=upload.file_name,
                word_count=word_count,
                credits_required=credits_required,
                balance=balance,
            ),
            keyboards.confirm_scan(ctx, upload.id),
        )
    else:
        _stage(Stage.AWAITING_CREDIT_PURCHASE, upload_id=str(upload.id), balance=balance)
        await ctx.reply(
            ctx.t(insufficient_key, credits_required=credits_required, balance=balance),
            keyboards.buy_credit(ctx),
        )


async def _ingest(ctx: ChatContext, policy: ServicePolicy, fmt: DocumentFormat) -> tuple[EssayUpload, int, int]:
    """Download, extract, price and persist under the busy lease. Returns (upload, words, credits)."""
    doc = ctx.update.document
    user = ctx.user
    file_name = doc.file_name or f"document.{fmt.value}"
    _stage(Stage.CHECKING_BUSY_LOCK)
    async with busy_lock.hold(user.id):
        _stage(Stage.EXTRACTING, file_name=file_name)
        content = await ctx.deps.download(doc.download_url)
        text = await extract_text_async(content, fmt)
        _stage(Stage.PRICING)
        word_count = count_words(text)
        credits_required = policy.price(word_count)
        _stage(Stage.PERSISTING, word_count=word_count, credits_required=credits_required)
        key = await uploads_service.store_file(
            user.chat_user_id, file_name, content, doc.mime_type, storage=ctx.deps.storage
        )
        upload = await uploads_service.create_upload(
            user_id=user.id,
            service=policy.kind.value,
            file_name=file_name,
            file_size=doc.file_size or len(content),
            file_path=key,
            mime_type=doc.mime_type,
            word_count=word_count,
            credits_required=credits_required,
        )
    return upload, word_count, credits_required


async def handle_document(ctx: ChatContext) -> None:
    session = ctx.session
    if session.waiting_for_credit_amount:
        log.info("document_ignored_waiting_for_amount")
        return
    _stage(Stage.AWAITING_SERVICE_SELECTION)
    kind = catalog.parse_kind(session.selected_service)
    if kind is None:
        await ctx.reply(ctx.t("select_service_first"), await keyboards.main_menu(ctx))
        return
    policy = catalog.policy_for(kind)

    _stage(Stage.VALIDATING_FORMAT, service=kind.value)
    doc = ctx.update.document
    fmt = detect_format(doc.file_name, doc.mime_type)
    if fmt not in policy.accepted_formats:
        log.info("format_rejected", file_name=doc.file_name, mime_type=doc.mime_type)
        await ctx.reply(ctx.t(policy.format_error_key))
        return

    try:
        await catalog.ensure_available(kind)
    except (NotFoundError, ServiceUnavailableError) as e:
        _stage(Stage.ERROR_RECOVERY, code=e.code)
        await ctx.reply(ctx.t("service_unavailable"))
        return

    try:
        if policy.requires_confirmation:
            upload, word_count, credits_required = await _ingest(ctx, policy, fmt)
            await _send_prompt(ctx, upload, word_count, credits_required)
        else:
            await _upload_and_charge(ctx, policy, fmt)
    except AppError as e:
        await _report_failure(ctx, e)


async def _upload_and_charge(ctx: ChatContext, policy: ServicePolicy, fmt: DocumentFormat) -> None:
    """Flat-priced services: charge on upload, no confirmation step."""
    balance = await credits_service.get_balance(ctx.user.id)
    minimum = policy.price(1)
    if balance < minimum:
        raise InsufficientCreditError(required=minimum, available=balance)
    upload, _, credits_required = await _ingest(ctx, policy, fmt)
    _stage(Stage.DEBITING, upload_id=str(upload.id))
    balance_after = await credits_service.debit(
        ctx.user.id,
        credits_required,
        policy.ledger_reason,
        upload_id=upload.id,
        description=f"Document upload: {upload.file_name}",
    )
    await uploads_service.set_status(upload, payment_status="paid")
    _stage(Stage.DELIVERING, upload_id=str(upload.id))
    await ctx.reply(
        ctx.t(
            "upload_success",
            file_name=upload.file_name,
            file_size=format_file_size(upload.file_size),
            upload_id=str(upload.id),
            balance=balance_after,
        ),
        keyboards.home(ctx),
    )


def _require_confirmable(upload: EssayUpload) -> None:
    kind = catalog.parse_kind(upload.service)
    if kind is None or not catalog.policy_for(kind).requires_confirmation:
        raise NotFoundError("Upload does not await confirmation")


async def _ensure_not_processed(upload: EssayUpload) -> None:
    if upload.is_settled:
        raise AlreadyProcessedError(str(upload.id))
    latest = await score_logs.latest_for_upload(upload.id)
    if latest and latest.status == "completed":
        raise AlreadyProcessedError(str(upload.id))


async def _pending_values(ctx: ChatContext, upload: EssayUpload) -> tuple[int, int]:
    """(word_count, credits_required) from the upload row, falling back to its latest score log."""
    word_count, credits_required = upload.word_count, upload.credits_required
    if credits_required <= 0:
        latest = await score_logs.latest_for_upload(upload.id)
        if latest is None:
            raise NotFoundError("Upload has no pricing")
        word_count, credits_required = latest.word_count, latest.credits_used
    session = ctx.session
    if session.pending_upload_id == upload.id and (
        session.pending_word_count != word_count or session.pending_credits_required != credits_required
    ):
        log.warning(
            "session_pricing_mismatch",
            upload_id=str(upload.id),
            session_credits=session.pending_credits_required,
            stored_credits=credits_required,
        )
    return word_count, credits_required


async def _abandon_attempt(upload: EssayUpload, entry: ScoreLogEntry, error: str, refunded: bool = False) -> None:
    """Mark the attempt failed and put the upload back in the queue so it can be confirmed again."""
    await score_logs.mark_failed(entry, error, refunded=refunded)
    await uploads_service.set_status(upload, status="queued")


async def _score(ctx: ChatContext, upload: EssayUpload, word_count: int, credits_required: int) -> None:
    user = ctx.user
    processing_id = None
    try:
        async with busy_lock.hold(user.id):
            await _ensure_not_processed(upload)
            balance = await credits_service.get_balance(user.id)
            if balance < credits_required:
                raise InsufficientCreditError(required=credits_required, available=balance)
            processing_id = await ctx.reply(ctx.t("processing"))

            fmt = detect_format(upload.file_name, upload.mime_type) or DocumentFormat.DOCX
            content = await uploads_service.load_file(upload.file_path, storage=ctx.deps.storage)
            text = await extract_text_async(content, fmt)

            _stage(Stage.DEBITING, upload_id=str(upload.id), credits=credits_required)
            request = ctx.deps.scoring.build_request(upload.file_name, text)
            request.pop("content")
            request["content_length"] = len(text)
            entry = await score_logs.create_pending(user.id, upload.id, word_count, credits_required, request)
            # every exit below settles the pending entry and the upload status
            try:
                await uploads_service.set_status(upload, status="processing")
                balance_after = await credits_service.debit(
                    user.id,
                    credits_required,
                    "originality_scan",
                    upload_id=upload.id,
                    description=f"Originality scan: {upload.file_name}",
                    reference_type="score_log",
                    reference_id=str(entry.id),
                )

                _stage(Stage.SCORING, upload_id=str(upload.id), score_log_id=str(entry.id))
                result = await ctx.deps.scoring.scan(upload.file_name, text)

                _stage(Stage.RECORDING, upload_id=str(upload.id))
                await score_logs.mark_completed(entry, result)
                await uploads_service.set_status(upload, status="completed", payment_status="paid")
            except ScoringApiError as e:
                refunded = await ctx.deps.refund_policy.on_scoring_failure(entry)
                await _abandon_attempt(upload, entry, e.body or e.message, refunded=refunded)
                ctx.session.clear_pending()
                _stage(Stage.ERROR_RECOVERY, code=e.code, upstream_status=e.upstream_status, refunded=refunded)
                key = "scoring_failed_refunded" if refunded else "scoring_failed"
                await ctx.reply(ctx.t(key, credits=credits_required))
                return
            except Exception as e:
                await _abandon_attempt(upload, entry, getattr(e, "message", None) or str(e) or type(e).__name__)
                raise

        _stage(Stage.DELIVERING, upload_id=str(upload.id))
        ctx.session.clear_pending()
        await ctx.conversation.delete(processing_id)
        processing_id = None
        await ctx.reply(
            ctx.t(
                "result",
                ai_score=_percent(result.ai_score),
                original_score=_percent(result.original_score),
                confidence=_percent(result.ai_confidence),
                credits_used=credits_required,
                balance=balance_after,
            ),
            keyboards.scan_result(ctx, result.public_link),
        )
    except AppError as e:
        await _report_failure(ctx, e, upload_id=str(upload.id))
    finally:
        if processing_id is not None:
            await ctx.conversation.delete(processing_id)


async def confirm(ctx: ChatContext) -> None:
    """Button originality_confirm_<upload_id>."""
    upload_id = PydanticObjectId(ctx.match.group(1))
    try:
        upload = await uploads_service.get_upload(upload_id, ctx.user.id)
        _require_confirmable(upload)
        word_count, credits_required = await _pending_values(ctx, upload)
    except AppError as e:
        await _report_failure(ctx, e, upload_id=str(upload_id))
        return
    await _score(ctx, upload, word_count, credits_required)


async def cancel(ctx: ChatContext) -> None:
    """Button originality_cancel_<upload_id>. The upload row stays; nothing was charged."""
    upload_id = PydanticObjectId(ctx.match.group(1))
    if ctx.session.pending_upload_id == upload_id:
        ctx.session.clear_pending()
    log.info("upload_cancelled", upload_id=str(upload_id))
    await ctx.reply(ctx.t("cancelled"), keyboards.home(ctx))


async def resume_after_payment(ctx: ChatContext, upload_id: PydanticObjectId | None) -> None:
    """
    Re-enter at the confirmation step after an external payment redirect.
    Without an explicit id the session's pending upload is used; when the
    session was lost the upload row still carries the pricing.
    """
    upload_id = upload_id or ctx.session.pending_upload_id
    if upload_id is None:
        balance = await credits_service.get_balance(ctx.user.id)
        await ctx.reply(ctx.t("payment_thanks", balance=balance), keyboards.home(ctx))
        return
    try:
        upload = await uploads_service.get_upload(upload_id, ctx.user.id)
        _require_confirmable(upload)
        await _ensure_not_processed(upload)
        word_count, credits_required = await _pending_values(ctx, upload)
        await _send_prompt(ctx, upload, word_count, credits_required, insufficient_key="payment_pending")
    except AppError as e:
        await _report_failure(ctx, e, upload_id=str(upload_id))


def register(dp: Dispatcher) -> None:
    dp.document(handle_document)
    dp.callback(r"originality_confirm_([0-9a-f]{24})")(confirm)
    dp.callback(r"originality_cancel_([0-9a-f]{24})")(cancel)
