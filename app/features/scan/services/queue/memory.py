import itertools
import time
import uuid
from collections import deque
from threading import RLock
from typing import Callable, Deque, Dict, Optional

from app.features.scan.exceptions import LeaseLostError
from app.features.scan.schemas.scan import JobState, ScanJob, ScanJobData, ScanResult
from app.features.scan.services.queue.base import JobQueue, RetentionPolicy, RetryPolicy
from app.platform.db.base import new_id
from app.platform.logger import get_logger

logger = get_logger(__name__)


class InMemoryJobQueue(JobQueue):
    """
    Process-local queue. All state sits behind one lock, so every operation is
    atomic with respect to the worker slots of this process.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        lease_seconds: float = 180.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(retry_policy, retention_policy, lease_seconds)
        self._clock = clock
        self._lock = RLock()
        self._jobs: Dict[str, ScanJob] = {}
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._completed: Deque[str] = deque()
        self._failed: Deque[str] = deque()

    def enqueue(self, data: ScanJobData, priority: int = 1, delay: float = 0.0) -> str:
        job_id = new_id()
        now = self._clock()
        job = ScanJob(
            id=job_id,
            url=data.url,
            include_fix_suggestions=data.include_fix_suggestions,
            submitter_identity=data.submitter_identity,
            submitted_at=data.submitted_at,
            priority=priority,
            state=JobState.delayed if delay > 0 else JobState.waiting,
            max_attempts=self.retry_policy.max_attempts,
            available_at=now + max(delay, 0.0),
        )
        with self._lock:
            self._jobs[job_id] = job
            self._order[job_id] = next(self._sequence)
        logger.info(f"[{job_id}] Enqueued scan of {data.url} ({job.state.value})")
        return job_id

    def lease(self) -> Optional[ScanJob]:
        with self._lock:
            now = self._clock()
            ready = [
                job for job in self._jobs.values()
                if job.state in (JobState.waiting, JobState.delayed) and job.available_at <= now
            ]
            if not ready:
                return None
            job = min(ready, key=lambda j: (j.priority, j.available_at, self._order[j.id]))
            job.state = JobState.active
            job.attempts += 1
            job.lease_token = uuid.uuid4().hex
            job.lease_expires_at = now + self.lease_seconds
            return job.model_copy(deep=True)

    def update_progress(self, job_id: str, lease_token: str, progress: int) -> int:
        progress = min(max(int(progress), 0), 100)
        with self._lock:
            job = self._owned(job_id, lease_token)
            job.progress = max(job.progress, progress)
            job.lease_expires_at = self._clock() + self.lease_seconds
            return job.progress

    def complete(self, job_id: str, lease_token: str, result: ScanResult) -> None:
        with self._lock:
            job = self._owned(job_id, lease_token)
            job.state = JobState.completed
            job.progress = 100
            job.result = result
            job.failure_reason = None
            job.finished_at = self._clock()
            self._release_lease(job)
            self._retain(self._completed, job_id, self.retention_policy.keep_completed)

    def fail(self, job_id: str, lease_token: str, reason: str) -> JobState:
        with self._lock:
            job = self._owned(job_id, lease_token)
            job.failure_reason = reason
            self._release_lease(job)
            if job.attempts < job.max_attempts:
                job.state = JobState.delayed
                job.available_at = self._clock() + self.retry_policy.delay_for(job.attempts)
                return job.state
            job.state = JobState.failed
            job.finished_at = self._clock()
            self._retain(self._failed, job_id, self.retention_policy.keep_failed)
            return job.state

    def read(self, job_id: str) -> Optional[ScanJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def requeue_stalled(self) -> int:
        moved = 0
        with self._lock:
            now = self._clock()
            for job in list(self._jobs.values()):
                if job.state != JobState.active or job.lease_expires_at is None:
                    continue
                if job.lease_expires_at > now:
                    continue
                self._release_lease(job)
                if job.attempts < job.max_attempts:
                    job.state = JobState.waiting
                    job.available_at = now
                    logger.warning(f"[{job.id}] Lease expired, job returned to waiting")
                else:
                    job.state = JobState.failed
                    job.failure_reason = self._stalled_reason(job.id)
                    job.finished_at = now
                    self._retain(self._failed, job.id, self.retention_policy.keep_failed)
                    logger.error(f"[{job.id}] Lease expired with no attempts left, job failed")
                moved += 1
        return moved

    def enforce_retention(self) -> int:
        with self._lock:
            return (
                self._trim(self._completed, self.retention_policy.keep_completed)
                + self._trim(self._failed, self.retention_policy.keep_failed)
            )

    def counts(self) -> Dict[str, int]:
        with self._lock:
            counts = {state.value: 0 for state in JobState}
            for job in self._jobs.values():
                counts[job.state.value] += 1
            return counts

    def _owned(self, job_id: str, lease_token: str) -> ScanJob:
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.active or job.lease_token != lease_token:
            raise LeaseLostError(f"Job {job_id} is no longer leased by this worker")
        return job

    @staticmethod
    def _release_lease(job: ScanJob) -> None:
        job.lease_token = None
        job.lease_expires_at = None

    def _retain(self, ring: Deque[str], job_id: str, keep: int) -> None:
        ring.append(job_id)
        self._trim(ring, keep)

    def _trim(self, ring: Deque[str], keep: int) -> int:
        removed = 0
        while len(ring) > keep:
            expired = ring.popleft()
            self._jobs.pop(expired, None)
            self._order.pop(expired, None)
            removed += 1
        return removed
