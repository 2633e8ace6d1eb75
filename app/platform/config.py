from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "A11y Scan AI"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # ── Job store ───────────────────────────────
    DATABASE_URL: str = "sqlite:///./scan_jobs.db"
    SCAN_QUEUE_BACKEND: Literal["sql", "memory"] = "sql"

    # ── Redis / Celery ──────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TASK_TIME_LIMIT: int = 300

    # ── Queue policy ────────────────────────────
    SCAN_MAX_ATTEMPTS: int = 3
    SCAN_BACKOFF_DELAY_SECONDS: float = 2.0
    SCAN_KEEP_COMPLETED: int = 100
    SCAN_KEEP_FAILED: int = 50
    SCAN_LEASE_SECONDS: float = 180.0
    SCAN_STALLED_CHECK_SECONDS: float = 30.0

    # ── Worker ──────────────────────────────────
    SCAN_WORKER_CONCURRENCY: int = 2
    SCAN_WORKER_POLL_SECONDS: float = 1.0
    SCAN_FETCH_TIMEOUT_SECONDS: float = 30.0
    SCAN_JOB_TIMEOUT_SECONDS: float = 120.0
    SCAN_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    SCAN_EMBEDDED_WORKER: bool = False
    SELENIUM_HEADLESS: bool = True

    # ── Rate limiting ───────────────────────────
    SCAN_RATE_LIMIT_WINDOW_SECONDS: int = 60
    FORCE_IN_MEMORY_RATE_LIMITER: bool = True

    # ── AI fix suggestions ──────────────────────
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    # ── Logging ─────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_DIR: Optional[str] = None
    LOG_FILE_NAME: str = "scan_service.log"
    LOG_MAX_BYTES: int = 10_000_000
    LOG_BACKUP_COUNT: int = 5

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
