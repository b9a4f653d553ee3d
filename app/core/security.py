import hashlib
import hmac

from app.core.exceptions import UnauthorizedError


def verify_razorpay_webhook(payload: bytes, signature: str, secret: str) -> bool:
    expected = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def require_shared_secret(provided: str | None, expected: str, label: str = "secret") -> None:
    """Constant-time check of a header secret. An empty expected value disables the check."""
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedError(f"Invalid {label}")
