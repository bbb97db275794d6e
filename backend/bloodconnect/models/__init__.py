"""SQLAlchemy models package."""
from bloodconnect.models.user import User
from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.opt_in import OptIn
from bloodconnect.models.certificate import Certificate
from bloodconnect.models.notification import Notification

__all__ = [
    "User",
    "BloodRequest",
    "OptIn",
    "Certificate",
    "Notification",
]
