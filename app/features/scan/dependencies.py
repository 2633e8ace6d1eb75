from functools import lru_cache

from fastapi import Depends

from app.features.scan.services.queue import JobQueue, create_job_queue
from app.features.scan.services.scan.gateway import ScanGateway
from app.platform.utils.rate_limit import SubmissionRateLimiter, create_rate_limiter


@lru_cache
def get_job_queue() -> JobQueue:
    return create_job_queue()


@lru_cache
def get_rate_limiter() -> SubmissionRateLimiter:
    return create_rate_limiter()


def get_scan_gateway(
    queue: JobQueue = Depends(get_job_queue),
    rate_limiter: SubmissionRateLimiter = Depends(get_rate_limiter),
) -> ScanGateway:
    return ScanGateway(queue=queue, rate_limiter=rate_limiter)
