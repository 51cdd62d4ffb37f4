"""
services/notification/emitter.py
In-app notifications: what to say for a request event, how it is
delivered, and the read-state operations behind the REST endpoints.

Delivery is a post-commit hook. The triggering transaction has already
committed when emit() runs, so a failure here is logged and dropped.
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import AsyncSessionLocal
from config.settings import settings
from shared.exceptions import NotFoundError, service_boundary
from shared.models.models import (
    AppraisalRequest,
    Notification,
    NotificationType,
    RequestStatus,
    RequestType,
    UserRole,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationDraft:
    """A notification that has been decided on but not yet stored."""
    user_id: uuid.UUID
    user_role: UserRole
    type: NotificationType
    title: str
    body: str
    request_id: Optional[uuid.UUID] = None
    company_id: Optional[uuid.UUID] = None

    def to_model(self) -> Notification:
        return Notification(**asdict(self))

    def to_payload(self) -> dict:
        """JSON-safe form for the Celery queue."""
        return {
            "user_id": str(self.user_id),
            "user_role": self.user_role.value,
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "request_id": str(self.request_id) if self.request_id else None,
            "company_id": str(self.company_id) if self.company_id else None,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "NotificationDraft":
        return cls(
            user_id=uuid.UUID(payload["user_id"]),
            user_role=UserRole(payload["user_role"]),
            type=NotificationType(payload["type"]),
            title=payload["title"],
            body=payload["body"],
            request_id=uuid.UUID(payload["request_id"]) if payload.get("request_id") else None,
            company_id=uuid.UUID(payload["company_id"]) if payload.get("company_id") else None,
        )


# ── Templates ─────────────────────────────────────────────────

def type_label(request_type: RequestType) -> str:
    return "car" if request_type == RequestType.VEHICLE else "property"


CUSTOMER_TEMPLATES = {
    RequestStatus.IN_PROGRESS: (
        NotificationType.REQUEST_IN_PROGRESS,
        "Appraisal In Progress",
        "{company_name} has started working on your {label} appraisal request.",
    ),
    RequestStatus.COMPLETED: (
        NotificationType.REQUEST_COMPLETED,
        "Appraisal Completed",
        "Your {label} appraisal from {company_name} has been completed. "
        "You can now download the report.",
    ),
    RequestStatus.REJECTED: (
        NotificationType.REQUEST_REJECTED,
        "Request Rejected",
        "{company_name} has rejected your appraisal request.",
    ),
    RequestStatus.INCOMPLETE_DOCS: (
        NotificationType.DOCUMENT_REQUIRED,
        "Documents Required",
        "{company_name} requires additional documents for your appraisal request.",
    ),
}


def build_submitted_notification(
    request: AppraisalRequest,
    company_user_id: Optional[uuid.UUID],
) -> List[NotificationDraft]:
    """Tell the company about a new request. Nothing if it has no owning identity."""
    if company_user_id is None:
        return []
    return [
        NotificationDraft(
            user_id=company_user_id,
            user_role=UserRole.COMPANY,
            type=NotificationType.REQUEST_SUBMITTED,
            title="New Appraisal Request",
            body=f"You have received a new {type_label(request.type)} appraisal request.",
            request_id=request.id,
            company_id=request.company_id,
        )
    ]


def build_status_notifications(
    request: AppraisalRequest,
    status: RequestStatus,
) -> List[NotificationDraft]:
    """Customer notifications for a status change. Unmapped statuses yield none."""
    template = CUSTOMER_TEMPLATES.get(status)
    if template is None:
        return []
    notification_type, title, body = template
    return [
        NotificationDraft(
            user_id=request.customer_id,
            user_role=UserRole.CUSTOMER,
            type=notification_type,
            title=title,
            body=body.format(company_name=request.company_name, label=type_label(request.type)),
            request_id=request.id,
            company_id=request.company_id,
        )
    ]


# ── Emitter ───────────────────────────────────────────────────

class NotificationEmitter:
    """Writes drafts after the caller's commit, inline or through Celery."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        mode: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.mode = mode or settings.NOTIFICATION_DISPATCH_MODE

    async def emit(self, drafts: List[NotificationDraft]) -> int:
        """Best-effort delivery. Returns how many drafts were handed off."""
        if not drafts:
            return 0
        try:
            if self.mode == "celery":
                from tasks.notification_tasks import deliver_notification

                for draft in drafts:
                    await asyncio.to_thread(deliver_notification.delay, draft.to_payload())
            else:
                async with self.session_factory() as session:
                    session.add_all([draft.to_model() for draft in drafts])
                    await session.commit()
        except Exception as e:
            logger.warning(f"Notification delivery failed ({len(drafts)} dropped): {e}", exc_info=True)
            return 0
        return len(drafts)


# ── Read State ────────────────────────────────────────────────

class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @service_boundary("Failed to create notification")
    async def create_notification(self, draft: NotificationDraft) -> Notification:
        notification = draft.to_model()
        self.db.add(notification)
        await self.db.commit()
        return notification

    @service_boundary("Failed to load notifications")
    async def get_user_notifications(
        self,
        user_id: uuid.UUID,
        user_role: UserRole,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> List[Notification]:
        query = (
            select(Notification)
            .where(Notification.user_id == user_id, Notification.user_role == user_role)
            .order_by(Notification.created_at.desc())
        )
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars())

    @service_boundary("Failed to mark notification as read")
    async def mark_as_read(
        self,
        notification_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Idempotent. When user_id is given, only the owner's row matches."""
        query = select(Notification.id).where(Notification.id == notification_id)
        if user_id is not None:
            query = query.where(Notification.user_id == user_id)
        if await self.db.scalar(query) is None:
            raise NotFoundError("Notification not found")

        await self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(is_read=True)
        )
        await self.db.commit()

    @service_boundary("Failed to mark notifications as read")
    async def mark_all_as_read(self, user_id: uuid.UUID, user_role: UserRole) -> int:
        """Each unread row is updated in its own savepoint; a failed row is logged and skipped."""
        result = await self.db.execute(
            select(Notification.id).where(
                Notification.user_id == user_id,
                Notification.user_role == user_role,
                Notification.is_read == False,  # noqa: E712
            )
        )
        updated = 0
        for notification_id in result.scalars().all():
            try:
                async with self.db.begin_nested():
                    await self.db.execute(
                        update(Notification)
                        .where(Notification.id == notification_id)
                        .values(is_read=True)
                    )
                updated += 1
            except SQLAlchemyError as e:
                logger.warning(f"Could not mark notification {notification_id} as read: {e}")
        await self.db.commit()
        return updated

    @service_boundary("Failed to count notifications")
    async def get_unread_count(self, user_id: uuid.UUID, user_role: UserRole) -> int:
        count = await self.db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.user_role == user_role,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return count or 0
