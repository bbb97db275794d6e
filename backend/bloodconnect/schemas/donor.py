"""Donor self-service schemas."""
from pydantic import BaseModel


class EligibilityResponse(BaseModel):
    """Computed eligibility; availability is the donor's own advisory flag."""
    
    donor_id: str
    blood_group: str | None
    availability: bool
    last_donation_date: str | None
    next_eligible_date: str | None
    eligible: bool


class AvailabilityUpdate(BaseModel):
    availability: bool
