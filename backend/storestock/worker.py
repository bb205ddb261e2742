"""storestock — Celery worker configuration."""
from celery import Celery
from celery.signals import setup_logging

from storestock.config import get_settings
from storestock.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "storestock",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=["storestock.tasks.reconcile_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_retry_delay=60,
    task_routes={
        "storestock.tasks.*": {"queue": "default"},
    },
)

# Celery Beat schedule
celery_app.conf.beat_schedule = {
    "reconcile-stock-balances": {
        "task": "storestock.tasks.reconcile_tasks.reconcile_stock_balances",
        "schedule": settings.RECONCILE_INTERVAL_SECONDS,
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(settings.LOG_LEVEL)
