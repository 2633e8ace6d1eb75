from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, JSON, String, Text, Enum

from app.features.scan.schemas.scan import JobState
from app.platform.db.base import BaseModel


class ScanJobRecord(BaseModel):
    """Durable row behind `SqlJobQueue`. The queue is the only writer."""

    __tablename__ = "scan_jobs"

    # Submission (immutable once enqueued)
    url = Column(Text, nullable=False)
    include_fix_suggestions = Column(Boolean, default=True, nullable=False)
    submitter_identity = Column(String(255), nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    priority = Column(Integer, default=1, nullable=False)

    # Job status (state machine)
    state = Column(Enum(JobState, values_callable=lambda states: [s.value for s in states]),
                   default=JobState.waiting, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)

    # Retry bookkeeping
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    available_at = Column(Float, nullable=False)

    # Lease
    lease_token = Column(String(64), nullable=True)
    lease_expires_at = Column(Float, nullable=True)

    # Outcome
    result = Column(JSON, nullable=True)
    failure_reason = Column(Text, nullable=True)
    finished_at = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_scan_jobs_ready", "state", "priority", "available_at"),
        Index("idx_scan_jobs_finished", "state", "finished_at"),
    )
