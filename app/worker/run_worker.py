"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from app.worker.tasks import get_redis_settings, maintenance_check, shutdown, startup

MAINTENANCE_MINUTES = set(range(0, 60, 10))


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [maintenance_check]
    cron_jobs = [
        cron(maintenance_check, minute=MAINTENANCE_MINUTES, second=0, run_at_startup=True, unique=True),
    ]
    on_startup = startup
    on_shutdown = shutdown


if __name__ == "__main__":
    run_worker(WorkerSettings)
