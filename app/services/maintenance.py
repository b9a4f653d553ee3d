"""Poll the upstream maintenance endpoint and mirror it onto the service availability flag."""

import httpx

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.logging import get_logger
from app.services import catalog

log = get_logger(__name__)

MAINTENANCE_NOTE = "service is in maintenance"


async def check_maintenance(transport: httpx.AsyncBaseTransport | None = None) -> bool | None:
    """
    Returns the reported is_maintenance flag, or None when the check failed.
    Failures are logged and never raised; the next tick retries.

    A service this check switched off is switched back on once maintenance ends;
    services stopped by an operator (any other note) stay stopped.
    """
    settings = get_settings()
    name = settings.maintenance_service_name
    try:
        async with httpx.AsyncClient(timeout=settings.maintenance_timeout_seconds, transport=transport) as client:
            resp = await client.get(settings.maintenance_status_url)
            resp.raise_for_status()
            is_maintenance = bool(resp.json().get("is_maintenance"))
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        log.warning("maintenance_check_failed", url=settings.maintenance_status_url, error=str(e))
        return None
    service = await catalog.get_service_by_name(name)
    if service is None:
        log.warning("maintenance_service_missing", service=name)
        return is_maintenance
    if is_maintenance:
        if service.status:
            await catalog.set_status(name, False, MAINTENANCE_NOTE)
            await log_event("service_toggled", name, details={"status": False, "note": MAINTENANCE_NOTE})
            log.info("maintenance_detected", service=name)
        return True
    if not service.status and service.note == MAINTENANCE_NOTE:
        await catalog.set_status(name, True, None)
        await log_event("service_toggled", name, details={"status": True})
        log.info("maintenance_cleared", service=name)
    return False
