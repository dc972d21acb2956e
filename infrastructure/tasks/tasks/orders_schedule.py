"""Orders schedule Celery tasks"""
from __future__ import annotations

import asyncio
from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from application.services.orders_schedule import run_scheduled_toggle
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.api_clients.base import APIError

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    name="orders_schedule.toggle",
    autoretry_for=(APIError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def toggle_orders_schedule(self) -> dict[str, Any]:
    """Apply the Kigali working-hours switch; admin overrides are left alone by the backend."""
    service_key = settings.service_key
    if not service_key:
        logger.error("orders_schedule_missing_service_key")
        return {"skipped": True, "reason": "SERVICE_API_KEY or ADMIN_API_KEY is not set"}

    result = asyncio.run(run_scheduled_toggle(service_key))
    return result.summary()
