"""Blood request model."""
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from bloodconnect.database import Base
from bloodconnect.models.enums import ASSIGNABLE_STATUSES

_ASSIGNABLE_SQL = ", ".join(f"'{s}'" for s in ASSIGNABLE_STATUSES)


class BloodRequest(Base):
    """A request for blood, moved through its lifecycle by the request service only."""
    
    __tablename__ = "blood_requests"
    __table_args__ = (
        CheckConstraint("units >= 1 AND units <= 10", name="ck_blood_request_units"),
        CheckConstraint(
            f"assigned_donor_id IS NULL OR status IN ({_ASSIGNABLE_SQL})",
            name="ck_blood_request_assignment_status",
        ),
        Index("ix_blood_requests_status", "status", "blood_group"),
    )
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    
    # Requestor contact
    requestor_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(15), nullable=False)
    
    # What is needed, where and when
    blood_group = Column(String(3), nullable=False)
    units = Column(Integer, nullable=False)
    urgency = Column(String(10), nullable=False, default="medium")  # low, medium, high, critical
    date_time = Column(String(26), nullable=False)  # naive UTC ISO timestamp
    hospital_name = Column(String(255), nullable=False)
    location = Column(Text, nullable=False)
    notes = Column(Text)
    
    # Lifecycle: pending, approved, rejected, donated
    status = Column(String(10), nullable=False, default="pending")
    rejection_reason = Column(Text)
    approved_at = Column(String(26))
    rejected_at = Column(String(26))
    
    # Assignment pointer (weak: cleared if the donor account goes away)
    assigned_donor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    assigned_at = Column(String(26))
    
    # Completion
    proof_photo_ref = Column(String(255))
    donated_at = Column(String(26))
    
    # Soft delete; requests referenced by opt-ins or certificates are never removed
    deleted_at = Column(String(26))
    
    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(), onupdate=lambda: datetime.utcnow().isoformat())
    
    # Relationships
    assigned_donor = relationship("User", foreign_keys=[assigned_donor_id])
    opt_ins = relationship("OptIn", back_populates="request", order_by="OptIn.opted_at")
    certificates = relationship("Certificate", back_populates="request")
