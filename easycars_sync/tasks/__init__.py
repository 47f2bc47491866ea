"""Celery app configuration and task registry"""

from celery import Celery
from easycars_sync.config import get_settings

settings = get_settings()

# Celery app
celery_app = Celery(
    "easycars_sync",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
    include=["easycars_sync.tasks.sync"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_soft_time_limit=1500,  # stock syncs with image downloads run long
    task_time_limit=1800,
    task_acks_late=True,       # Acknowledge after task completion
    worker_prefetch_multiplier=1,  # One task at a time per worker

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Beat schedule (periodic tasks)
    beat_schedule={
        "sync-all-dealerships-stock": {
            "task": "easycars_sync.tasks.sync.sync_all_dealerships_stock",
            "schedule": settings.STOCK_SYNC_INTERVAL_SECONDS,
        },
        "sync-all-dealerships-leads": {
            "task": "easycars_sync.tasks.sync.sync_all_dealerships_leads",
            "schedule": settings.LEAD_SYNC_INTERVAL_SECONDS,
        },
        "sync-all-dealerships-lead-statuses": {
            "task": "easycars_sync.tasks.sync.sync_all_dealerships_lead_statuses",
            "schedule": settings.LEAD_STATUS_SYNC_INTERVAL_SECONDS,
        },
    },
)
