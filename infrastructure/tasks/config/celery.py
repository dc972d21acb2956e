"""
Celery application

The gateway runs a single periodic job (the Kigali working-hours orders
switch). Broker and result backend share the Redis used for idempotency
keys; in development and tests tasks execute eagerly in-process.
"""
from __future__ import annotations

import os

from celery import Celery, signals
from kombu import Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger
from .beat import CELERY_BEAT_SCHEDULE


TASK_PACKAGES = ("infrastructure.tasks.tasks",)
EAGER_ENVIRONMENTS = {"development", "dev", "test", "testing"}

logger = get_logger(__name__)

celery_app = Celery("nihemart_gateway")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=settings.scheduler.interval_seconds,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues=(Queue("default"),),
    task_routes={"orders_schedule.*": {"queue": "default"}},
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=TASK_PACKAGES,
    task_always_eager=(settings.ENVIRONMENT or "production").lower() in EAGER_ENVIRONMENTS,
)

celery_app.autodiscover_tasks(packages=TASK_PACKAGES)


@signals.setup_logging.connect
def _use_structlog(**kwargs):
    # 连接该信号后 Celery 不再接管 root logger
    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        eager=sender.conf.task_always_eager,
        beat_jobs=sorted(sender.conf.beat_schedule or {}),
    )
