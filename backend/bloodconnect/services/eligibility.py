"""Donor eligibility calculation.

The stored availability flag is only a donor preference. Whether a donor can
give blood now is always recomputed here from the last donation date.
"""
from datetime import date, datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from bloodconnect.config import get_settings
from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.enums import RequestStatus, UserRole
from bloodconnect.models.user import User

DEFAULT_COOLDOWN_MONTHS = 3


def _as_date(value: date | datetime | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def next_eligible_date(
    last_donation_date: date | datetime | str | None,
    cooldown_months: int = DEFAULT_COOLDOWN_MONTHS,
) -> date | None:
    """First date on which a donor may donate again, or None if never donated."""
    last = _as_date(last_donation_date)
    if last is None:
        return None
    return last + relativedelta(months=cooldown_months)


def is_eligible(
    last_donation_date: date | datetime | str | None,
    now: date | datetime | None = None,
    cooldown_months: int = DEFAULT_COOLDOWN_MONTHS,
) -> bool:
    """Check whether the cooldown since the last donation has elapsed.

    Args:
        last_donation_date: Date of the donor's last donation, if any.
        now: Reference time; defaults to the current UTC time.
        cooldown_months: Calendar months a donor must wait between donations.

    Returns:
        True if the donor never donated or ``now`` is on or after
        ``last_donation_date + cooldown_months``.
    """
    next_date = next_eligible_date(last_donation_date, cooldown_months)
    if next_date is None:
        return True
    today = _as_date(now or datetime.utcnow())
    return today >= next_date


def donor_cooldown_months() -> int:
    return get_settings().donation_cooldown_months


def is_donor_eligible(donor: User, now: datetime | None = None) -> bool:
    """Donor is willing (availability) and past the cooldown."""
    return bool(donor.availability) and is_eligible(
        donor.last_donation_date, now, donor_cooldown_months()
    )


def is_donor_eligible_for_request(
    donor: User,
    blood_request: BloodRequest,
    now: datetime | None = None,
) -> bool:
    """Eligible donor for a request: same blood group, eligible now, request approved."""
    return (
        donor.blood_group == blood_request.blood_group
        and blood_request.status == RequestStatus.APPROVED.value
        and is_donor_eligible(donor, now)
    )


def find_eligible_donors(
    db: Session,
    blood_request: BloodRequest,
    now: datetime | None = None,
) -> list[User]:
    """All donors currently eligible for the given request."""
    candidates = db.query(User).filter(
        User.role == UserRole.DONOR.value,
        User.blood_group == blood_request.blood_group,
        User.availability == 1,
    ).all()
    # Cooldown is re-derived per donor rather than filtered in SQL
    return [d for d in candidates if is_donor_eligible_for_request(d, blood_request, now)]
