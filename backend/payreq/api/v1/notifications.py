"""
Notification API Routes
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from payreq.core.database import get_db
from payreq.core.security import get_current_principal
from payreq.schemas import (
    NotificationResponse, NotificationListResponse, UnreadCountResponse,
    MarkAllReadResponse, MessageResponse
)
from payreq.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    notification_service = NotificationService(db)
    items, total = notification_service.get_notifications(
        principal.user_id, page=page, limit=limit, unread_only=unread_only
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "unread_count": notification_service.get_unread_count(principal.user_id),
    }


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return {"unread_count": NotificationService(db).get_unread_count(principal.user_id)}


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    updated = NotificationService(db).mark_all_as_read(principal.user_id)
    db.commit()
    return {"updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    notification = NotificationService(db).mark_as_read(principal.user_id, notification_id)
    db.commit()
    db.refresh(notification)
    return notification


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    NotificationService(db).delete(principal.user_id, notification_id)
    db.commit()
    return {"message": "Notification deleted successfully"}
