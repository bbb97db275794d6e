"""Notification API endpoints."""
import json

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bloodconnect.api.deps import get_current_user, get_db
from bloodconnect.models.notification import Notification
from bloodconnect.models.user import User
from bloodconnect.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    metadata: dict
    read: bool
    created_at: str


class UnreadCountResponse(BaseModel):
    unread: int


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        type=n.type,
        title=n.title,
        message=n.message,
        metadata=json.loads(n.metadata_json or "{}"),
        read=bool(n.read),
        created_at=n.created_at,
    )


@router.get("", response_model=list[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get user's notifications."""
    return [_to_response(n) for n in notifications.list_notifications(db, current_user.id, unread_only)]


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCountResponse(unread=notifications.count_unread(db, current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark a notification as read."""
    return _to_response(notifications.mark_read(db, current_user.id, notification_id))


@router.post("/read-all")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark all notifications as read."""
    updated = notifications.mark_all_read(db, current_user.id)
    return {"success": True, "updated": updated}
