"""Celery workers module - imports task modules for autodiscovery."""

from app.features.scan.workers import periodic_tasks  # noqa: F401
