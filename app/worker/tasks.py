"""ARQ job definitions."""

from typing import Any
from urllib.parse import urlparse

from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.logging import configure_logging, get_logger
from app.db.init import init_db
from app.services.maintenance import check_maintenance

log = get_logger(__name__)


async def maintenance_check(ctx: dict[str, Any]) -> bool | None:
    """Cron job: mirror upstream maintenance state onto the service menu. Never raises."""
    log.info("job_start", job="maintenance_check")
    result = await check_maintenance()
    log.info("job_done", job="maintenance_check", is_maintenance=result)
    return result


async def startup(ctx: dict) -> None:
    configure_logging(debug=get_settings().debug)
    await init_db()


async def shutdown(ctx: dict) -> None:
    log.info("worker_shutdown")


def get_redis_settings() -> RedisSettings:
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/") or 0),
        ssl=u.scheme == "rediss",
    )
