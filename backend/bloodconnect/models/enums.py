"""Fixed enumerations shared by models, schemas and services."""
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    DONOR = "donor"


class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position in the low < medium < high < critical ordering."""
        return list(Urgency).index(self)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DONATED = "donated"


class CertificateStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    GENERATED = "generated"


# Statuses in which a request may carry an assigned donor
ASSIGNABLE_STATUSES = (RequestStatus.APPROVED.value, RequestStatus.DONATED.value)
