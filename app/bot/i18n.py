"""Chat message catalogue. Messages are HTML; interpolated strings are escaped."""

import html
from typing import Any

DEFAULT_LANGUAGE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        # menu
        "welcome": "👋 Welcome, {name}!\n\nChoose a service below, then send your document.",
        "service_label": "{mark} {name}",
        "button_profile": "👤 Profile",
        "button_feedback": "💬 Feedback",
        "button_help": "❓ Help",
        "button_home": "🏠 Menu",
        "help": (
            "<b>How it works</b>\n"
            "1. Pick a service from the menu.\n"
            "2. Send your essay as a Word document.\n"
            "3. Confirm the credit charge and receive your report."
        ),
        "profile": "👤 <b>{name}</b>\n\n💰 Credits: <b>{credit}</b>",
        "unknown_update": "Please use the menu below.",
        "service_not_found": "This service could not be found.",
        "service_stopped": "⛔ This service is currently unavailable. {note}",
        "select_service_first": "Please choose a service before sending a document.",
        "originality_upload_prompt": (
            "📄 Send your essay as a <b>.doc</b> or <b>.docx</b> file.\n"
            "Pricing: up to 3000 words = 1 credit, up to 6000 words = 2 credits, longer = 3 credits."
        ),
        "turnitin_upload_prompt": "📄 Send your document as a <b>.docx</b> file. Each upload costs 1 credit.",
        "upload_essay": "Send your document now.",
        # upload workflow
        "originality_format_error": "❌ Only <b>.doc</b> and <b>.docx</b> files are accepted for the originality check.",
        "turnitin_format_error": "❌ Only <b>.docx</b> files are accepted.",
        "service_unavailable": "⛔ This service is not available right now. Please try again later.",
        "already_analyzing": "⏳ We are still analysing your previous document. Please wait until it finishes.",
        "extraction_failed": "❌ We could not read any text from this document. Please check the file and try again.",
        "storage_failed": "❌ We could not process the file. Please send it again.",
        "scoring_failed": "❌ The analysis failed. Please try again later.",
        "scoring_failed_refunded": "❌ The analysis failed. Your {credits} credit(s) have been returned.",
        "generic_error": "❌ Something went wrong. Please try again.",
        "upload_not_found": "❌ This upload could not be found.",
        "already_processed": "ℹ️ This document has already been analysed.",
        "confirm_prompt": (
            "📄 <b>{file_name}</b>\n"
            "Words: <b>{word_count}</b>\n"
            "Credits required: <b>{credits_required}</b>\n"
            "Your balance: <b>{balance}</b>\n\n"
            "Start the analysis?"
        ),
        "button_confirm": "✅ Confirm",
        "button_cancel": "✖️ Cancel",
        "insufficient_credit": (
            "💳 This document needs <b>{credits_required}</b> credit(s) but you have <b>{balance}</b>.\n"
            "Buy credits to continue; your document is saved."
        ),
        "button_buy_credit": "💳 Buy credits",
        "processing": "⏳ Analysing your document...",
        "result": (
            "✅ <b>Analysis complete</b>\n\n"
            "🤖 AI score: <b>{ai_score}%</b>\n"
            "✍️ Original score: <b>{original_score}%</b>\n"
            "🎯 Confidence: <b>{confidence}%</b>\n\n"
            "Credits used: {credits_used}\n"
            "Remaining credits: {balance}"
        ),
        "button_report": "📊 Full report",
        "upload_success": (
            "✅ <b>{file_name}</b> uploaded ({file_size}).\n"
            "Reference: <code>{upload_id}</code>\n"
            "Remaining credits: {balance}"
        ),
        "cancelled": "Analysis cancelled. No credits were charged.",
        # payments
        "payment_thanks": "🎉 Thank you! Your balance is <b>{balance}</b> credit(s).",
        "payment_cancelled": "Payment cancelled.",
        "payment_pending": "⏳ Your payment has not been confirmed yet. Please try again in a moment.",
        "buy_credit_menu": "💳 <b>Buy credits</b>\nChoose a package:",
        "credit_package": "{credits} credits ({price})",
        "button_custom_amount": "✏️ Custom amount",
        "credit_custom_prompt": (
            "How many credits would you like? Send a number.\n"
            "100 or more: {bulk_price} per credit, otherwise {unit_price} per credit."
        ),
        "credit_invalid_amount": "Please send a whole number of credits between 1 and {max}.",
        "payment_link": "💳 {credits} credits for <b>{price}</b>.\nTap the button below to pay.",
        "button_pay": "Pay now",
        "payments_unavailable": "Payments are not available right now. Please try again later.",
        # feedback
        "feedback_prompt": "How was your experience?",
        "button_feedback_good": "👍 Good",
        "button_feedback_bad": "👎 Bad",
        "feedback_message_prompt": "Tell us more, or skip.",
        "button_skip": "Skip",
        "button_exit": "Exit",
        "feedback_thanks": "🙏 Thanks for your feedback!",
    },
}


def _escape(value: Any) -> Any:
    return html.escape(value) if isinstance(value, str) else value


def t(key: str, lang: str | None = None, **params: Any) -> str:
    """Look up a message; unknown languages and missing keys fall back to English."""
    catalogue = MESSAGES.get((lang or DEFAULT_LANGUAGE).split("-")[0], MESSAGES[DEFAULT_LANGUAGE])
    template = catalogue.get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key)
    if template is None:
        return key
    return template.format(**{k: _escape(v) for k, v in params.items()})
