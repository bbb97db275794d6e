"""Donor opt-in ledger model."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from bloodconnect.database import Base


class OptIn(Base):
    """A donor's declaration of willingness to donate for one request. Never updated."""
    
    __tablename__ = "donor_opt_ins"
    __table_args__ = (
        UniqueConstraint("donor_id", "request_id", name="uq_donor_opt_in"),
    )
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    donor_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    request_id = Column(String(36), ForeignKey("blood_requests.id", ondelete="RESTRICT"), nullable=False, index=True)
    opted_at = Column(String(26), nullable=False, default=lambda: datetime.utcnow().isoformat())
    
    # Relationships
    donor = relationship("User", back_populates="opt_ins")
    request = relationship("BloodRequest", back_populates="opt_ins")
