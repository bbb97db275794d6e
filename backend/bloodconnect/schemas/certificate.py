"""Certificate schemas."""
from pydantic import BaseModel


class CertificateResponse(BaseModel):
    """Donation certificate."""
    
    id: str
    donor_id: str
    request_id: str
    certificate_number: str | None
    donation_date: str
    blood_group: str
    units: int
    hospital_name: str | None
    status: str  # pending, approved, generated
    approved_at: str | None
    generated_at: str | None
    created_at: str
    
    class Config:
        from_attributes = True
