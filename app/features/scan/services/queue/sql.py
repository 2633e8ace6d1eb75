import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from sqlalchemy import case, delete, func, select, text, update
from sqlalchemy.orm import Session, sessionmaker

from app.features.scan.exceptions import LeaseLostError
from app.features.scan.models.scan_job import ScanJobRecord
from app.features.scan.schemas.scan import JobState, ScanJob, ScanJobData, ScanResult
from app.features.scan.services.queue.base import JobQueue, RetentionPolicy, RetryPolicy
from app.platform.logger import get_logger

logger = get_logger(__name__)

# How many ready rows a lease call tries to claim before giving up
LEASE_CANDIDATES = 10


class SqlJobQueue(JobQueue):
    """
    Queue backed by the `scan_jobs` table.

    Claims and writes are conditional UPDATEs on (state, lease_token), so two
    workers racing for the same row can never both own it, whichever process
    they run in.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        retry_policy: Optional[RetryPolicy] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        lease_seconds: float = 180.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(retry_policy, retention_policy, lease_seconds)
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def enqueue(self, data: ScanJobData, priority: int = 1, delay: float = 0.0) -> str:
        now = self._clock()
        record = ScanJobRecord(
            url=data.url,
            include_fix_suggestions=data.include_fix_suggestions,
            submitter_identity=data.submitter_identity,
            submitted_at=data.submitted_at,
            priority=priority,
            state=JobState.delayed if delay > 0 else JobState.waiting,
            progress=0,
            attempts=0,
            max_attempts=self.retry_policy.max_attempts,
            available_at=now + max(delay, 0.0),
        )
        with self._session() as db:
            db.add(record)
            db.flush()
            job_id = record.id
        logger.info(f"[{job_id}] Enqueued scan of {data.url} ({record.state.value})")
        return job_id

    def lease(self) -> Optional[ScanJob]:
        now = self._clock()
        with self._session() as db:
            candidates = db.execute(
                select(ScanJobRecord.id)
                .where(
                    ScanJobRecord.state.in_([JobState.waiting, JobState.delayed]),
                    ScanJobRecord.available_at <= now,
                )
                .order_by(ScanJobRecord.priority, ScanJobRecord.available_at, ScanJobRecord.id)
                .limit(LEASE_CANDIDATES)
            ).scalars().all()

            for candidate_id in candidates:
                token = uuid.uuid4().hex
                claimed = db.execute(
                    update(ScanJobRecord)
                    .where(
                        ScanJobRecord.id == candidate_id,
                        ScanJobRecord.state.in_([JobState.waiting, JobState.delayed]),
                    )
                    .values(
                        state=JobState.active,
                        attempts=ScanJobRecord.attempts + 1,
                        lease_token=token,
                        lease_expires_at=now + self.lease_seconds,
                    )
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 1:
                    db.commit()
                    return self._load(db, candidate_id)
        return None

    def update_progress(self, job_id: str, lease_token: str, progress: int) -> int:
        progress = min(max(int(progress), 0), 100)
        with self._session() as db:
            updated = db.execute(
                self._owned_update(job_id, lease_token).values(
                    progress=case((ScanJobRecord.progress < progress, progress), else_=ScanJobRecord.progress),
                    lease_expires_at=self._clock() + self.lease_seconds,
                )
            )
            self._require(updated.rowcount, job_id)
            return db.execute(
                select(ScanJobRecord.progress).where(ScanJobRecord.id == job_id)
            ).scalar_one()

    def complete(self, job_id: str, lease_token: str, result: ScanResult) -> None:
        with self._session() as db:
            updated = db.execute(
                self._owned_update(job_id, lease_token).values(
                    state=JobState.completed,
                    progress=100,
                    result=result.model_dump(mode="json"),
                    failure_reason=None,
                    finished_at=self._clock(),
                    lease_token=None,
                    lease_expires_at=None,
                )
            )
            self._require(updated.rowcount, job_id)
            self._retain(db, JobState.completed, self.retention_policy.keep_completed)

    def fail(self, job_id: str, lease_token: str, reason: str) -> JobState:
        now = self._clock()
        with self._session() as db:
            record = db.get(ScanJobRecord, job_id)
            if record is None or record.state != JobState.active or record.lease_token != lease_token:
                raise LeaseLostError(f"Job {job_id} is no longer leased by this worker")

            if record.attempts < record.max_attempts:
                values = dict(
                    state=JobState.delayed,
                    available_at=now + self.retry_policy.delay_for(record.attempts),
                )
            else:
                values = dict(state=JobState.failed, finished_at=now)

            updated = db.execute(
                self._owned_update(job_id, lease_token).values(
                    failure_reason=reason,
                    lease_token=None,
                    lease_expires_at=None,
                    **values,
                )
            )
            self._require(updated.rowcount, job_id)
            if values["state"] == JobState.failed:
                self._retain(db, JobState.failed, self.retention_policy.keep_failed)
            return values["state"]

    def read(self, job_id: str) -> Optional[ScanJob]:
        with self._session() as db:
            return self._load(db, job_id)

    def requeue_stalled(self) -> int:
        now = self._clock()
        moved = 0
        with self._session() as db:
            stalled = db.execute(
                select(ScanJobRecord.id, ScanJobRecord.attempts, ScanJobRecord.max_attempts)
                .where(ScanJobRecord.state == JobState.active, ScanJobRecord.lease_expires_at <= now)
            ).all()
            for job_id, attempts, max_attempts in stalled:
                if attempts < max_attempts:
                    values = dict(state=JobState.waiting, available_at=now)
                else:
                    values = dict(state=JobState.failed, finished_at=now,
                                  failure_reason=self._stalled_reason(job_id))
                updated = db.execute(
                    update(ScanJobRecord)
                    .where(
                        ScanJobRecord.id == job_id,
                        ScanJobRecord.state == JobState.active,
                        ScanJobRecord.lease_expires_at <= now,
                    )
                    .values(lease_token=None, lease_expires_at=None, **values)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount == 1:
                    moved += 1
                    logger.warning(f"[{job_id}] Lease expired, job moved to {values['state'].value}")
            if moved:
                self._retain(db, JobState.failed, self.retention_policy.keep_failed)
        return moved

    def enforce_retention(self) -> int:
        with self._session() as db:
            removed = self._retain(db, JobState.completed, self.retention_policy.keep_completed)
            removed += self._retain(db, JobState.failed, self.retention_policy.keep_failed)
        if removed:
            logger.info(f"Retention removed {removed} finished scan jobs")
        return removed

    def counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in JobState}
        with self._session() as db:
            rows = db.execute(
                select(ScanJobRecord.state, func.count()).group_by(ScanJobRecord.state)
            ).all()
        for state, count in rows:
            counts[state.value] = count
        return counts

    def ping(self) -> bool:
        with self._session() as db:
            db.execute(text("SELECT 1"))
        return True

    @staticmethod
    def _owned_update(job_id: str, lease_token: str):
        return (
            update(ScanJobRecord)
            .where(
                ScanJobRecord.id == job_id,
                ScanJobRecord.state == JobState.active,
                ScanJobRecord.lease_token == lease_token,
            )
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _require(rowcount: int, job_id: str) -> None:
        if rowcount != 1:
            raise LeaseLostError(f"Job {job_id} is no longer leased by this worker")

    @staticmethod
    def _retain(db: Session, state: JobState, keep: int) -> int:
        expired = db.execute(
            select(ScanJobRecord.id)
            .where(ScanJobRecord.state == state)
            .order_by(ScanJobRecord.finished_at.desc(), ScanJobRecord.id.desc())
            .offset(keep)
        ).scalars().all()
        if expired:
            db.execute(
                delete(ScanJobRecord)
                .where(ScanJobRecord.id.in_(expired))
                .execution_options(synchronize_session=False)
            )
        return len(expired)

    @staticmethod
    def _load(db: Session, job_id: str) -> Optional[ScanJob]:
        record = db.get(ScanJobRecord, job_id, populate_existing=True)
        if record is None:
            return None
        return ScanJob(
            id=record.id,
            url=record.url,
            include_fix_suggestions=record.include_fix_suggestions,
            submitter_identity=record.submitter_identity,
            submitted_at=record.submitted_at,
            priority=record.priority,
            state=record.state,
            progress=record.progress,
            attempts=record.attempts,
            max_attempts=record.max_attempts,
            available_at=record.available_at,
            lease_token=record.lease_token,
            lease_expires_at=record.lease_expires_at,
            result=ScanResult.model_validate(record.result) if record.result else None,
            failure_reason=record.failure_reason,
            finished_at=record.finished_at,
        )
