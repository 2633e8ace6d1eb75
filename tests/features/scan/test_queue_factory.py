from app.features.scan.services.queue import InMemoryJobQueue, SqlJobQueue, create_job_queue
from app.platform.config import settings
from app.platform.utils.rate_limit import InMemorySubmissionRateLimiter, RedisSubmissionRateLimiter, create_rate_limiter


def test_memory_backend(monkeypatch):
    monkeypatch.setattr(settings, "SCAN_QUEUE_BACKEND", "memory")
    monkeypatch.setattr(settings, "SCAN_MAX_ATTEMPTS", 5)

    queue = create_job_queue()

    assert isinstance(queue, InMemoryJobQueue)
    assert queue.retry_policy.max_attempts == 5
    assert queue.retention_policy.keep_completed == settings.SCAN_KEEP_COMPLETED
    assert queue.lease_seconds == settings.SCAN_LEASE_SECONDS


def test_sql_backend_creates_table(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "SCAN_QUEUE_BACKEND", "sql")
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'scan_jobs.db'}")

    queue = create_job_queue()

    assert isinstance(queue, SqlJobQueue)
    assert queue.ping() is True
    assert queue.counts()["waiting"] == 0


def test_rate_limiter_backends(monkeypatch):
    monkeypatch.setattr(settings, "FORCE_IN_MEMORY_RATE_LIMITER", True)
    assert isinstance(create_rate_limiter(), InMemorySubmissionRateLimiter)

    monkeypatch.setattr(settings, "FORCE_IN_MEMORY_RATE_LIMITER", False)
    limiter = create_rate_limiter(redis=object())
    assert isinstance(limiter, RedisSubmissionRateLimiter)
    assert limiter.window_seconds == settings.SCAN_RATE_LIMIT_WINDOW_SECONDS
