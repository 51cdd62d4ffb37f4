"""
tasks/celery_app.py
Celery application instance shared by all task modules.

Only used when NOTIFICATION_DISPATCH_MODE=celery. Workers are started with:
    celery -A tasks.celery_app worker -Q notifications --loglevel=info
"""

from celery import Celery

from config.settings import settings

celery_app = Celery(
    "appraisal_marketplace",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tasks.notification_tasks"],
)

# ── Configuration ─────────────────────────────────────────────────────────────

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Delivery is attempt-once: ack on receipt, never redeliver
    task_acks_late=False,
    task_max_retries=0,

    result_expires=3600,

    task_annotations={
        "tasks.notification_tasks.deliver_notification": {"rate_limit": "50/s"},
    },
    task_routes={
        "tasks.notification_tasks.*": {"queue": "notifications"},
    },
    worker_prefetch_multiplier=1,
)
