from app.platform.celery_app import celery_app
from app.platform.logger import get_logger

logger = get_logger(__name__)


@celery_app.task(name="app.features.scan.workers.periodic_tasks.requeue_stalled_scan_jobs")
def requeue_stalled_scan_jobs() -> dict:
    """
    Recover jobs whose worker died mid-scan: an active job whose lease was not
    renewed in time goes back to waiting, or to failed when out of attempts.
    Then trim finished jobs back to the retention bounds.
    """
    from app.features.scan.dependencies import get_job_queue

    queue = get_job_queue()
    moved = queue.requeue_stalled()
    if moved:
        logger.warning(f"Requeued {moved} stalled scan jobs")
    trimmed = queue.enforce_retention()
    return {"requeued": moved, "trimmed": trimmed, "counts": queue.counts()}
