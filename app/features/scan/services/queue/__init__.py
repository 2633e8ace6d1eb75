from app.features.scan.services.queue.base import JobQueue, RetentionPolicy, RetryPolicy
from app.features.scan.services.queue.memory import InMemoryJobQueue
from app.features.scan.services.queue.sql import SqlJobQueue
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)


def create_job_queue() -> JobQueue:
    """Build the queue selected by SCAN_QUEUE_BACKEND with the configured policies."""
    retry_policy = RetryPolicy(
        max_attempts=settings.SCAN_MAX_ATTEMPTS,
        backoff_delay=settings.SCAN_BACKOFF_DELAY_SECONDS,
    )
    retention_policy = RetentionPolicy(
        keep_completed=settings.SCAN_KEEP_COMPLETED,
        keep_failed=settings.SCAN_KEEP_FAILED,
    )

    if settings.SCAN_QUEUE_BACKEND == "memory":
        logger.info("Using in-memory scan job queue")
        return InMemoryJobQueue(
            retry_policy=retry_policy,
            retention_policy=retention_policy,
            lease_seconds=settings.SCAN_LEASE_SECONDS,
        )

    from app.platform.db.session import create_session_factory, create_sync_engine, init_db

    engine = create_sync_engine(settings.DATABASE_URL)
    init_db(engine)
    logger.info(f"Using SQL scan job queue ({engine.url.get_backend_name()})")
    return SqlJobQueue(
        create_session_factory(engine),
        retry_policy=retry_policy,
        retention_policy=retention_policy,
        lease_seconds=settings.SCAN_LEASE_SECONDS,
    )


__all__ = [
    "JobQueue",
    "InMemoryJobQueue",
    "SqlJobQueue",
    "RetryPolicy",
    "RetentionPolicy",
    "create_job_queue",
]
