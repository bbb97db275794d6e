"""Admin dashboard endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bloodconnect.api.deps import get_db, require_admin
from bloodconnect.models.user import User
from bloodconnect.schemas.dashboard import BloodGroupStatsResponse, DashboardStatsResponse
from bloodconnect.services import dashboard

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Request, donor, opt-in and certificate totals."""
    return dashboard.request_stats(db)


@router.get("/blood-groups", response_model=list[BloodGroupStatsResponse])
def get_blood_group_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return dashboard.blood_group_stats(db)
