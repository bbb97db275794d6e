"""Donation certificate model."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from bloodconnect.database import Base


class Certificate(Base):
    """Certificate for a completed donation: pending -> approved -> generated."""
    
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("donor_id", "request_id", name="uq_certificate_donation"),
        Index("ix_certificates_status", "status"),
    )
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    donor_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    request_id = Column(String(36), ForeignKey("blood_requests.id", ondelete="RESTRICT"), nullable=False)
    
    # Allocated exactly once, at generation
    certificate_number = Column(String(32), unique=True)
    
    # Snapshot of the donation
    donation_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    blood_group = Column(String(3), nullable=False)
    units = Column(Integer, nullable=False)
    hospital_name = Column(String(255))
    
    # Status: pending, approved, generated
    status = Column(String(10), nullable=False, default="pending")
    approved_at = Column(String(26))
    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    generated_at = Column(String(26))
    
    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    
    # Relationships
    donor = relationship("User", foreign_keys=[donor_id], back_populates="certificates")
    request = relationship("BloodRequest", back_populates="certificates")
