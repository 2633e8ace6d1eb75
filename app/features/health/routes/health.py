from fastapi import APIRouter, Depends, status

from app.features.scan.dependencies import get_job_queue
from app.features.scan.services.queue import JobQueue
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health_check(queue: JobQueue = Depends(get_job_queue)):
    try:
        queue.ping()
        counts = queue.counts()
    except Exception as e:
        logger.error(f"Health check could not reach the job store: {e}")
        return api_response(
            data={"status": "degraded", "service": "A11y Scan AI"},
            message="Job store unreachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return api_response(
        data={"status": "ok", "service": "A11y Scan AI", "jobs": counts},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
