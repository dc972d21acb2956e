"""Celery beat schedule configuration."""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "orders-schedule-toggle": {
        "task": "orders_schedule.toggle",
        "schedule": float(settings.scheduler.interval_seconds),
        "options": {"queue": "default", "expires": settings.scheduler.interval_seconds},
    },
}
