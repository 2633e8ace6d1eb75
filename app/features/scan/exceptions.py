"""
Scan error taxonomy.

Submission errors (`ScanValidationError`, `RateLimitExceededError`) are
surfaced to the caller immediately and never enqueue anything. Pipeline
errors raised inside the worker are recorded on the job and retried by the
queue, except suggester errors which the worker downgrades to a placeholder.
"""
from typing import Optional


class ScanError(Exception):
    code = "scan_error"
    # Status used when the error reaches an API caller
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def reason(self) -> str:
        return f"{self.code}: {self.message}"


class ScanValidationError(ScanError):
    code = "validation_error"
    http_status = 400


class RateLimitExceededError(ScanError):
    code = "rate_limited"
    http_status = 429

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message)
        self.retry_after = retry_after


class JobNotFoundError(ScanError):
    code = "not_found"
    http_status = 404


class FetchError(ScanError):
    code = "fetch_failed"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    code = "fetch_timeout"


class JobTimeoutError(ScanError):
    code = "job_timeout"


class DetectorError(ScanError):
    code = "detector_failed"


class SuggesterError(ScanError):
    code = "suggester_failed"


class SuggesterQuotaError(SuggesterError):
    code = "suggester_quota_exceeded"


class LeaseLostError(ScanError):
    code = "lease_lost"


def describe_failure(exc: BaseException) -> str:
    """Human-readable failure reason stored on a failed job."""
    if isinstance(exc, ScanError):
        return exc.reason
    return f"unexpected_error: {exc.__class__.__name__}: {exc}"
