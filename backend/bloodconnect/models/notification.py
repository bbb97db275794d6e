"""Notification model for in-app workflow alerts."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from bloodconnect.database import Base


class Notification(Base):
    """In-app notification fanned out by workflow events."""
    
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "read"),
        Index("ix_notifications_created", "user_id", "created_at"),
    )
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    
    # Notification type: request_created, request_approved, donor_opted_in, donor_assigned, ...
    type = Column(String(50), nullable=False)
    
    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_json = Column("metadata", Text, default="{}")  # requestId / optInId / certificateId
    
    # Status
    read = Column(Integer, default=0)  # SQLite boolean
    read_at = Column(String(26))
    
    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
