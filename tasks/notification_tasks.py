"""
tasks/notification_tasks.py
Celery side of notification delivery.

The API process has already committed the triggering change and
enqueued a NotificationDraft payload. The worker writes the row once;
a failure is logged and the notification is dropped.

Usage:
    from tasks.notification_tasks import deliver_notification
    deliver_notification.delay(draft.to_payload())
"""

import logging

from celery import Task
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def sync_database_url(url: str) -> str:
    """Celery runs sync, so swap the async driver for its blocking counterpart."""
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


# ── Base Task with DB session ──────────────────────────────────────────────────

class DatabaseTask(Task):
    """Base class that provides a synchronous DB session for tasks."""
    abstract = True
    _session_factory = None

    def get_session(self):
        if DatabaseTask._session_factory is None:
            engine = create_engine(sync_database_url(settings.DATABASE_URL), pool_pre_ping=True)
            DatabaseTask._session_factory = sessionmaker(bind=engine)
        return DatabaseTask._session_factory()


@celery_app.task(bind=True, base=DatabaseTask)
def deliver_notification(self, payload: dict) -> bool:
    """Store one in-app notification. Returns False when it was dropped."""
    from services.notification.emitter import NotificationDraft

    db = self.get_session()
    try:
        db.add(NotificationDraft.from_payload(payload).to_model())
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.warning(f"deliver_notification dropped {payload.get('type')} for {payload.get('user_id')}: {e}")
        return False
    finally:
        db.close()
