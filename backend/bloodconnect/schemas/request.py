"""Blood request and opt-in schemas."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class BloodRequestCreate(BaseModel):
    """Public blood request submission.

    Ranges and enumerations are enforced by the request lifecycle so direct
    service callers get the same checks.
    """
    
    requestor_name: str = Field(..., max_length=100)
    email: EmailStr
    phone: str = Field(..., max_length=15)
    blood_group: str  # A+, A-, B+, B-, AB+, AB-, O+, O-
    units: int
    urgency: str = "medium"  # low, medium, high, critical
    date_time: datetime
    hospital_name: str = Field(..., max_length=255)
    location: str
    notes: str | None = None


class RejectRequest(BaseModel):
    reason: str | None = None


class AssignDonorRequest(BaseModel):
    donor_id: str


class BloodRequestResponse(BaseModel):
    """Blood request as seen by admins."""
    
    id: str
    requestor_name: str
    email: str
    phone: str
    blood_group: str
    units: int
    urgency: str
    date_time: str
    hospital_name: str
    location: str
    notes: str | None
    status: str
    rejection_reason: str | None
    assigned_donor_id: str | None
    assigned_at: str | None
    proof_photo_ref: str | None
    donated_at: str | None
    created_at: str
    
    class Config:
        from_attributes = True


class MatchingRequestResponse(BaseModel):
    """Approved request shown to a matching donor (no requestor contact details)."""
    
    id: str
    blood_group: str
    units: int
    urgency: str
    date_time: str
    hospital_name: str
    location: str
    notes: str | None
    
    class Config:
        from_attributes = True


class BloodRequestListResponse(BaseModel):
    """Paginated request list response."""
    
    requests: list[BloodRequestResponse]
    total: int
    limit: int
    offset: int


class OptInResponse(BaseModel):
    id: str
    donor_id: str
    request_id: str
    opted_at: str
    
    class Config:
        from_attributes = True


class OptedInDonorResponse(BaseModel):
    """Candidate in a request's assignment pool."""
    
    opt_in_id: str
    opted_at: str
    donor_id: str
    name: str
    email: str
    phone: str | None
    blood_group: str | None
    eligible: bool
    assigned: bool
