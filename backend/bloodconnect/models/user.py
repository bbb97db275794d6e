"""User model (admins and donors)."""
import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from bloodconnect.database import Base


class User(Base):
    """User account. Donors carry blood group, availability and donation history."""
    
    __tablename__ = "users"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(15))
    role = Column(String(10), nullable=False, default="donor", index=True)  # admin, donor
    
    # Donor profile
    blood_group = Column(String(3))
    availability = Column(Integer, default=1)  # SQLite boolean, advisory only
    last_donation_date = Column(String(10))  # YYYY-MM-DD
    
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(), onupdate=lambda: datetime.utcnow().isoformat())
    
    # Relationships
    opt_ins = relationship("OptIn", back_populates="donor")
    certificates = relationship("Certificate", back_populates="donor", foreign_keys="Certificate.donor_id")
    notifications = relationship("Notification", backref="user", cascade="all, delete-orphan")
