from celery import Celery
from kombu import Queue

from app.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Celery only runs queue maintenance here. Scan jobs themselves are leased
    from the job store by `ScanWorker` processes.

    Queue Structure:
    - scan.maintenance: stalled-lease recovery and retention
    """
    celery_app = Celery(
        "a11y_scan_ai",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,

        task_routes={
            "app.features.scan.workers.periodic_tasks.requeue_stalled_scan_jobs": {"queue": "scan.maintenance"},
        },

        task_queues=(
            Queue("default"),
            Queue("scan.maintenance"),
        ),

        task_default_queue="default",

        worker_prefetch_multiplier=1,

        task_acks_late=True,
        task_reject_on_worker_lost=True,

        beat_schedule={
            "requeue-stalled-scan-jobs": {
                "task": "app.features.scan.workers.periodic_tasks.requeue_stalled_scan_jobs",
                "schedule": settings.SCAN_STALLED_CHECK_SECONDS,
            },
        },
    )

    celery_app.autodiscover_tasks(["app.features.scan.workers"], related_name="periodic_tasks")

    return celery_app


celery_app = create_celery_app()
