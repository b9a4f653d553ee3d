from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ExtractionError(AppError):
    """No usable text could be recovered from a document."""

    def __init__(self, message: str = "unable to extract text"):
        super().__init__(message, code="EXTRACTION_FAILED", status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class EmptyDocumentError(AppError):
    def __init__(self, message: str = "Document contains no words"):
        super().__init__(message, code="EMPTY_DOCUMENT", status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class InsufficientCreditError(AppError):
    def __init__(self, required: int, available: int):
        super().__init__(
            "Insufficient credits",
            code="INSUFFICIENT_CREDIT",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class FormatMismatchError(AppError):
    def __init__(self, message: str = "Unsupported document format", details: dict[str, Any] | None = None):
        super().__init__(
            message,
            code="FORMAT_MISMATCH",
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            details=details,
        )


class BusyError(AppError):
    def __init__(self, message: str = "An analysis is already in progress"):
        super().__init__(message, code="BUSY", status_code=status.HTTP_409_CONFLICT)


class AlreadyProcessedError(ConflictError):
    def __init__(self, upload_id: str):
        super().__init__("Upload already processed", details={"upload_id": upload_id})


class ScoringApiError(AppError):
    """Scoring provider returned an error status or an unusable body."""

    def __init__(self, message: str, upstream_status: int | None = None, body: str | None = None):
        super().__init__(
            message,
            code="SCORING_API_ERROR",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"upstream_status": upstream_status},
        )
        self.upstream_status = upstream_status
        self.body = body


class StorageError(AppError):
    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, code="STORAGE_ERROR", status_code=status.HTTP_502_BAD_GATEWAY)


class ServiceUnavailableError(AppError):
    def __init__(self, message: str = "Service not available"):
        super().__init__(message, code="SERVICE_UNAVAILABLE", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
