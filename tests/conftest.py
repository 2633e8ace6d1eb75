"""
Test configuration and fixtures for the A11y Scan AI API.

Tests run against the in-memory queue and rate limiter; the SQL queue is
exercised separately against a temporary SQLite file.
"""

import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ["SCAN_QUEUE_BACKEND"] = "memory"
os.environ["FORCE_IN_MEMORY_RATE_LIMITER"] = "true"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_scan_jobs.db")

from app.features.scan.dependencies import get_job_queue, get_rate_limiter  # noqa: E402
from app.features.scan.services.queue import InMemoryJobQueue, RetryPolicy  # noqa: E402
from app.platform.utils.rate_limit import InMemorySubmissionRateLimiter  # noqa: E402


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue() -> InMemoryJobQueue:
    """In-memory queue with no backoff so retries are immediately leasable."""
    return InMemoryJobQueue(retry_policy=RetryPolicy(max_attempts=3, backoff_delay=0.0))


@pytest.fixture
def rate_limiter(clock) -> InMemorySubmissionRateLimiter:
    return InMemorySubmissionRateLimiter(window_seconds=60, clock=clock)


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app, queue, rate_limiter) -> Generator[TestClient, None, None]:
    """
    Test client whose queue and rate limiter are the per-test fixtures above,
    so each test starts with an empty queue and a fresh submission window.
    """
    test_app.dependency_overrides[get_job_queue] = lambda: queue
    test_app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    with TestClient(test_app) as test_client:
        yield test_client

    test_app.dependency_overrides.pop(get_job_queue, None)
    test_app.dependency_overrides.pop(get_rate_limiter, None)
