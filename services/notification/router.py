"""
services/notification/router.py
In-app notification inbox for the signed-in user.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.notification.emitter import NotificationService
from shared.middleware.auth import get_current_user
from shared.models.models import User
from shared.schemas.schemas import (
    CountMessageResponse,
    MessageResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationResponse])
async def get_my_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get authenticated user's in-app notifications, newest first."""
    notifications = await NotificationService(db).get_user_notifications(
        current_user.id, current_user.role, unread_only, page, page_size
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService(db).get_unread_count(current_user.id, current_user.role)
    return UnreadCountResponse(unread_count=count)


@router.post("/read-all", response_model=CountMessageResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationService(db).mark_all_as_read(current_user.id, current_user.role)
    return CountMessageResponse(message="All notifications marked as read", count=updated)


@router.post("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService(db).mark_as_read(notification_id, user_id=current_user.id)
    return MessageResponse(message="Marked as read")
