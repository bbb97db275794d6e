"""Notification inbox service and recipient lookups."""
import json
from datetime import datetime

from sqlalchemy.orm import Session

from bloodconnect.models.enums import UserRole
from bloodconnect.models.notification import Notification
from bloodconnect.models.user import User
from bloodconnect.services.errors import NotFoundError


def get_admins(db: Session) -> list[User]:
    """All admin users (recipients of request and opt-in events)."""
    return db.query(User).filter(User.role == UserRole.ADMIN.value).order_by(User.created_at).all()


def create_notification(
    db: Session,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    metadata: dict | None = None,
) -> Notification:
    """Create an in-app notification (not committed)."""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        metadata_json=json.dumps(metadata or {}),
    )
    db.add(notification)
    return notification


def list_notifications(
    db: Session,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[Notification]:
    """Get a user's notifications, newest first."""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read == 0)
    return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def count_unread(db: Session, user_id: str) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == 0,
    ).count()


def mark_read(db: Session, user_id: str, notification_id: str) -> Notification:
    """Mark one of the user's notifications as read."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found", notification_id=notification_id)

    if not notification.read:
        notification.read = 1
        notification.read_at = datetime.utcnow().isoformat()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: str) -> int:
    """Mark every unread notification of the user as read. Returns the count updated."""
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == 0,
    ).update(
        {"read": 1, "read_at": datetime.utcnow().isoformat()},
        synchronize_session=False,
    )
    db.commit()
    return updated
