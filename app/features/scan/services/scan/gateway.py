from datetime import datetime, timezone
from typing import Callable

from app.features.scan.exceptions import JobNotFoundError, RateLimitExceededError, ScanValidationError
from app.features.scan.schemas.scan import ScanJobData, ScanStatusResponse
from app.features.scan.services.queue.base import JobQueue
from app.platform.logger import get_logger
from app.platform.utils.rate_limit import SubmissionRateLimiter

logger = get_logger(__name__)


class ScanGateway:
    """
    Submission and status side of the scan pipeline.

    `submit` validates, rate-limits and enqueues. URL syntax is deliberately
    not checked here: a bad URL surfaces later as a fetch failure on the job.
    `status` is read-only. No retries happen at this layer.
    """

    def __init__(
        self,
        queue: JobQueue,
        rate_limiter: SubmissionRateLimiter,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.queue = queue
        self.rate_limiter = rate_limiter
        self._clock = clock

    def submit(self, url: str, include_fix_suggestions: bool = True, submitter_identity: str = "unknown") -> str:
        if not url or not url.strip():
            raise ScanValidationError("Missing URL in request body")

        if not self.rate_limiter.try_acquire(submitter_identity):
            retry_after = self.rate_limiter.retry_after(submitter_identity)
            logger.warning(f"Rate limit exceeded for {submitter_identity}, retry in {retry_after}s")
            raise RateLimitExceededError(
                "Too many scan requests, please wait a minute.",
                retry_after=retry_after,
            )

        data = ScanJobData(
            url=url.strip(),
            include_fix_suggestions=include_fix_suggestions,
            submitter_identity=submitter_identity,
            submitted_at=self._clock(),
        )
        try:
            job_id = self.queue.enqueue(data)
        except Exception:
            # nothing was accepted, don't hold the submitter's window
            self.rate_limiter.release(submitter_identity)
            raise

        logger.info(f"[{job_id}] Scan job accepted for {data.url} (submitter={submitter_identity}, "
                    f"include_fix_suggestions={include_fix_suggestions})")
        return job_id

    def status(self, job_id: str) -> ScanStatusResponse:
        job = self.queue.read(job_id)
        if job is None:
            raise JobNotFoundError("Job not found")
        return ScanStatusResponse.from_job(job)
