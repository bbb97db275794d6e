"""Admin dashboard schemas."""
from pydantic import BaseModel


class RequestCounts(BaseModel):
    pending: int
    approved: int
    rejected: int
    donated: int
    total: int


class DonorCounts(BaseModel):
    total: int
    available: int
    eligible: int


class CertificateCounts(BaseModel):
    pending: int
    approved: int
    generated: int


class DashboardStatsResponse(BaseModel):
    requests: RequestCounts
    donors: DonorCounts
    opt_ins: int
    certificates: CertificateCounts


class BloodGroupStatsResponse(BaseModel):
    """Open (pending or approved) demand for one blood group."""
    
    blood_group: str
    pending_requests: int
    approved_requests: int
    units_needed: int
    available_donors: int
