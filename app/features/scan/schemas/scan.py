"""
Scan Schemas

Domain models shared by the gateway, queue and worker, plus the request and
response bodies of the scan API. JSON keys are camelCase.
"""
import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobState(str, enum.Enum):
    """Scan job state machine"""
    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"
    delayed = "delayed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.completed, JobState.failed)


IMPACT_LEVELS = ("critical", "serious", "moderate", "minor")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Violation(CamelModel):
    """One accessibility rule failure, normalized from raw detector output."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    impact: str = "unknown"
    description: str = ""
    help_text: Optional[str] = None
    help_url: Optional[str] = None
    affected_element_count: int = Field(default=0, ge=0)


class ScanSummary(CamelModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    critical: int = 0
    serious: int = 0
    moderate: int = 0
    minor: int = 0

    @classmethod
    def from_violations(cls, violations: List[Violation]) -> "ScanSummary":
        counts = {level: 0 for level in IMPACT_LEVELS}
        for violation in violations:
            if violation.impact in counts:
                counts[violation.impact] += 1
        return cls(total=len(violations), **counts)


class ScanResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    violations: List[Violation] = Field(default_factory=list)
    url: str
    timestamp: datetime
    fix_suggestions: Optional[str] = None
    summary: ScanSummary


class ScanJobData(CamelModel):
    """What the gateway hands to `JobQueue.enqueue`."""
    url: str
    include_fix_suggestions: bool = True
    submitter_identity: str
    submitted_at: datetime


class ScanJob(CamelModel):
    """Snapshot of a job as stored by the queue."""
    id: str
    url: str
    include_fix_suggestions: bool = True
    submitter_identity: str
    submitted_at: datetime
    priority: int = 1
    state: JobState = JobState.waiting
    progress: int = 0
    attempts: int = 0
    max_attempts: int = 3
    available_at: float = 0.0
    lease_token: Optional[str] = None
    lease_expires_at: Optional[float] = None
    result: Optional[ScanResult] = None
    failure_reason: Optional[str] = None
    finished_at: Optional[float] = None


# ============================================================================
# API Schemas
# ============================================================================

class ScanStartRequest(BaseModel):
    """Body of POST /scan. `url` is optional here so a missing one maps to 400."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "url": "https://example.com",
                "includeAIFixes": True,
            }
        },
    )

    url: Optional[str] = None
    include_ai_fixes: bool = Field(default=True, alias="includeAIFixes")


class ScanStartResponse(CamelModel):
    job_id: str
    status_url: str
    url: str


class ScanStatusResponse(BaseModel):
    """State-appropriate projection of a job for status polling."""
    status: JobState
    progress: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: ScanJob) -> "ScanStatusResponse":
        if job.state == JobState.completed:
            result = job.result.model_dump(mode="json", by_alias=True) if job.result else None
            return cls(status=job.state, progress=100, result=result)
        if job.state == JobState.failed:
            return cls(status=job.state, progress=0, error=job.failure_reason)
        return cls(status=job.state, progress=job.progress)
