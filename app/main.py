import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from app.bot.dispatcher import BotDeps
from app.bot.transport import HttpDownloader
from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_id, configure_logging, get_logger
from app.db.init import init_db
from app.routers import admin, chat, payments
from app.services.catalog import seed_services
from app.services.refunds import refund_policy_from_settings
from app.services.scoring import OriginalityClient
from app.storage.base import get_storage
from app.workflows import build_dispatcher

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="Essay Originality Bot API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


def default_deps() -> BotDeps:
    return BotDeps(
        storage=get_storage(),
        scoring=OriginalityClient(),
        download=HttpDownloader(),
        refund_policy=refund_policy_from_settings(),
    )


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(chat.router, prefix="/v1/chat", tags=["chat"])
app.include_router(payments.router, prefix="/v1/payments", tags=["payments"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await init_db()
    await seed_services()
    app.state.dispatcher = build_dispatcher(default_deps())
    log.info("startup", msg="DB connected")


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
