"""
Job queue contract.

The queue is the single store of truth for scan jobs. Workers never
read-modify-write a job themselves: every mutation goes through one of the
atomic operations below, and every mutation made on behalf of a lease must
present that lease's token.

State machine::

    delayed -> waiting -> active -> completed
                  ^          |
                  |          +----> delayed (retry with backoff) / failed
                  +-- stalled lease (active -> waiting)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from app.features.scan.schemas.scan import JobState, ScanJob, ScanJobData, ScanResult


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff before the attempt following `attempt` (1-based)."""
        return self.backoff_delay * (2 ** (max(attempt, 1) - 1))


@dataclass(frozen=True)
class RetentionPolicy:
    keep_completed: int = 100
    keep_failed: int = 50


class JobQueue(ABC):
    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        lease_seconds: float = 180.0,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.retention_policy = retention_policy or RetentionPolicy()
        self.lease_seconds = lease_seconds

    @abstractmethod
    def enqueue(self, data: ScanJobData, priority: int = 1, delay: float = 0.0) -> str:
        """Store a new job (waiting, or delayed when `delay` > 0) and return its id."""

    @abstractmethod
    def lease(self) -> Optional[ScanJob]:
        """
        Claim the next ready job for exclusive processing.

        Lower `priority` values go first, FIFO within a priority. The returned
        snapshot carries the `lease_token` required by the write operations.
        """

    @abstractmethod
    def update_progress(self, job_id: str, lease_token: str, progress: int) -> int:
        """Raise the job's progress (never lowers it) and renew the lease. Returns stored progress."""

    @abstractmethod
    def complete(self, job_id: str, lease_token: str, result: ScanResult) -> None:
        """Move an active job to completed."""

    @abstractmethod
    def fail(self, job_id: str, lease_token: str, reason: str) -> JobState:
        """
        Record a failed attempt. Returns `delayed` when the job will be
        re-offered after backoff, `failed` once attempts are exhausted.
        """

    @abstractmethod
    def read(self, job_id: str) -> Optional[ScanJob]:
        """Snapshot of the job, or None if unknown or discarded by retention."""

    @abstractmethod
    def requeue_stalled(self) -> int:
        """Return active jobs with an expired lease to waiting (or failed). Returns how many moved."""

    @abstractmethod
    def enforce_retention(self) -> int:
        """Discard terminal jobs beyond the retention bounds. Returns how many were removed."""

    @abstractmethod
    def counts(self) -> Dict[str, int]:
        """Number of stored jobs per state."""

    def ping(self) -> bool:
        return True

    def _stalled_reason(self, job_id: str) -> str:
        return f"job_stalled: Job {job_id} stalled more than the allowable limit"
