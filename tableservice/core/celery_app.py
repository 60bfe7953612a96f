"""
Table Service — Celery application

Uses Redis as both broker and result backend. Beat fires the scheduled
notification poller; overlapping runs are dropped by a Redis in-flight key.
"""
from celery import Celery

from tableservice.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "table_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["tableservice.tasks.notification_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    beat_schedule={
        "dispatch-scheduled-notifications": {
            "task": "dispatch_scheduled_notifications",
            "schedule": float(settings.NOTIFICATION_POLL_INTERVAL_SECONDS),
            # A tick that waits longer than one interval is stale
            "options": {"expires": float(settings.NOTIFICATION_POLL_INTERVAL_SECONDS)},
        },
    },
)
