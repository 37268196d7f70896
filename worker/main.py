"""RQ Worker entrypoint."""

import os
import platform

import structlog
from rq import SimpleWorker, Worker

from api.config import get_settings
from api.logging import setup_logging
from api.sentry import init_sentry
from worker.redis import (
    QUEUE_DEFAULT,
    QUEUE_HIGH,
    QUEUE_LOW,
    get_redis_connection_bytes,
)

logger = structlog.get_logger(__name__)


def run_worker() -> None:
    """Start the RQ worker."""
    settings = get_settings()
    setup_logging()
    init_sentry()

    queues = [QUEUE_HIGH, QUEUE_DEFAULT, QUEUE_LOW]
    logger.info("Starting worker", env=settings.env, queues=queues)

    try:
        from worker.scheduler import ensure_insights_schedule, ensure_summary_schedule

        ensure_summary_schedule()
        ensure_insights_schedule()
    except Exception as e:
        logger.warning("schedule_init_failed", error=str(e))

    # Use SimpleWorker on Windows (no os.fork() support)
    WorkerClass = SimpleWorker if platform.system() == "Windows" else Worker

    worker = WorkerClass(
        queues,
        connection=get_redis_connection_bytes(),
        name=f"perfboard-worker-{os.getpid()}",
    )

    worker.work(
        with_scheduler=True,
        logging_level=settings.log_level,
    )


if __name__ == "__main__":
    run_worker()
