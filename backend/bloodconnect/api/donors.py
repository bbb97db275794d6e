"""Donor self-service endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bloodconnect.api.deps import get_db, require_donor
from bloodconnect.models.user import User
from bloodconnect.schemas.donor import AvailabilityUpdate, EligibilityResponse
from bloodconnect.services.eligibility import donor_cooldown_months, is_donor_eligible, next_eligible_date

router = APIRouter(prefix="/donors", tags=["donors"])


def _eligibility(donor: User) -> EligibilityResponse:
    next_date = next_eligible_date(donor.last_donation_date, donor_cooldown_months())
    return EligibilityResponse(
        donor_id=donor.id,
        blood_group=donor.blood_group,
        availability=bool(donor.availability),
        last_donation_date=donor.last_donation_date,
        next_eligible_date=next_date.isoformat() if next_date else None,
        eligible=is_donor_eligible(donor),
    )


@router.get("/me/eligibility", response_model=EligibilityResponse)
def get_my_eligibility(donor: User = Depends(require_donor)):
    """Whether the current donor can donate now, recomputed from their last donation."""
    return _eligibility(donor)


@router.patch("/me/availability", response_model=EligibilityResponse)
def update_my_availability(
    update: AvailabilityUpdate,
    db: Session = Depends(get_db),
    donor: User = Depends(require_donor),
):
    """Toggle the donor's advisory availability flag."""
    donor.availability = 1 if update.availability else 0
    db.commit()
    db.refresh(donor)
    return _eligibility(donor)
