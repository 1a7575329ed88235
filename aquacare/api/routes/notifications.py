"""In-app notification endpoints for portal users and admins."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.api.deps import AdminAccount, CurrentAccount
from aquacare.persistence.database import get_db
from aquacare.persistence.models.notification import NotificationAudience
from aquacare.persistence.repositories.notification_repository import NotificationRepository

router = APIRouter()


class NotificationResponse(BaseModel):
    """Notification response model."""

    id: int
    notification_type: str
    title: str
    message: str
    ref_id: str | None = None
    extra_data: dict | None = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread: int


@router.get("/notifications", response_model=NotificationListResponse)
async def list_my_notifications(
    current_account: CurrentAccount,
    db: Annotated[AsyncSession, Depends(get_db)],
    unread_only: Annotated[bool, Query()] = False,
) -> NotificationListResponse:
    """The caller's notifications, newest first."""
    repo = NotificationRepository(db)
    items = await repo.list_for_account(current_account.id, unread_only=unread_only)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        unread=await repo.count_unread_for_account(current_account.id),
    )


@router.post("/notifications/read-all")
async def mark_my_notifications_read(
    current_account: CurrentAccount,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, int]:
    """Mark every notification of the caller as read."""
    updated = await NotificationRepository(db).mark_all_read_for_account(current_account.id)
    await db.commit()
    return {"updated": updated}


@router.get("/admin/notifications", response_model=list[NotificationResponse])
async def list_admin_notifications(
    admin: AdminAccount,
    db: Annotated[AsyncSession, Depends(get_db)],
    unread_only: Annotated[bool, Query()] = False,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[NotificationResponse]:
    """Admin bell notifications, newest first."""
    items = await NotificationRepository(db).list_for_admin(unread_only=unread_only, limit=limit)
    return [NotificationResponse.model_validate(n) for n in items]


@router.post("/admin/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_admin_notification_read(
    notification_id: int,
    admin: AdminAccount,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationResponse:
    """Mark one admin notification as read."""
    notification = await NotificationRepository(db).get_by_id(notification_id)
    if notification is None or notification.audience != NotificationAudience.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    notification.mark_as_read()
    await db.commit()
    return NotificationResponse.model_validate(notification)
