from datetime import timedelta
import os

from celery import Celery

from booking_ledger.core.config import settings

broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")

celery_app = Celery(
    "booking_ledger",
    broker=broker_url,
    backend=result_backend,
    include=["booking_ledger.tasks.availability"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "apply-availability-rules": {
            "task": "availability.apply_rules",
            "schedule": timedelta(hours=settings.celery_rule_apply_interval_hours),
        },
    },
)
