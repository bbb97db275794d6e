"""Donor opt-in ledger.

The (donor, request) pair is unique at the storage layer; that constraint is
what actually prevents duplicate opt-ins. The lookup before the insert only
exists to fail fast with a friendly error.
"""
import logging
from datetime import datetime

from sqlalchemy import case, literal_column
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.enums import RequestStatus, Urgency, UserRole
from bloodconnect.models.opt_in import OptIn
from bloodconnect.models.user import User
from bloodconnect.services.effects import Notify, Push, TransitionResult
from bloodconnect.services.eligibility import donor_cooldown_months, is_eligible, next_eligible_date
from bloodconnect.services.errors import (
    BloodGroupMismatchError,
    DuplicateOptInError,
    NotEligibleError,
    NotFoundError,
    RequestNotAvailableError,
)
from bloodconnect.services.notifications import get_admins

logger = logging.getLogger(__name__)

# SQLite rowid follows insertion order; breaks ties between equal opted_at values
OPT_IN_SEQUENCE = literal_column(f"{OptIn.__tablename__}.rowid")

URGENCY_ORDER = case(
    {u.value: u.rank for u in Urgency},
    value=BloodRequest.urgency,
    else_=-1,
)


def get_donor(db: Session, donor_id: str) -> User:
    donor = db.query(User).filter(
        User.id == donor_id,
        User.role == UserRole.DONOR.value,
    ).first()
    if not donor:
        raise NotFoundError("Donor not found", donor_id=donor_id)
    return donor


def check_donor_eligible(donor: User, now: datetime | None = None) -> None:
    """Raise NotEligibleError unless the donor can donate right now."""
    if not donor.availability:
        raise NotEligibleError(
            "You are currently marked as unavailable",
            donor_id=donor.id,
            reason="unavailable",
        )
    cooldown = donor_cooldown_months()
    if not is_eligible(donor.last_donation_date, now, cooldown):
        next_date = next_eligible_date(donor.last_donation_date, cooldown)
        raise NotEligibleError(
            f"You can donate again from {next_date.isoformat()}",
            donor_id=donor.id,
            reason="cooldown",
            next_eligible_date=next_date.isoformat(),
        )


def _find_opt_in(db: Session, donor_id: str, request_id: str) -> OptIn | None:
    return db.query(OptIn).filter(
        OptIn.donor_id == donor_id,
        OptIn.request_id == request_id,
    ).first()


def opt_in(
    db: Session,
    donor_id: str,
    request_id: str,
    now: datetime | None = None,
) -> TransitionResult[OptIn]:
    """Record a donor's willingness to donate for an approved request.

    Preconditions are checked in a fixed order, each with its own error:
    eligibility, request availability, blood group, then uniqueness.
    """
    now = now or datetime.utcnow()
    donor = get_donor(db, donor_id)
    check_donor_eligible(donor, now)

    blood_request = db.query(BloodRequest).filter(
        BloodRequest.id == request_id,
        BloodRequest.deleted_at.is_(None),
    ).first()
    if not blood_request or blood_request.status != RequestStatus.APPROVED.value:
        raise RequestNotAvailableError(
            "Blood request not found or not approved",
            request_id=request_id,
            current_status=blood_request.status if blood_request else None,
            required_status=RequestStatus.APPROVED.value,
        )

    if donor.blood_group != blood_request.blood_group:
        raise BloodGroupMismatchError(
            "Your blood group does not match this request",
            donor_blood_group=donor.blood_group,
            request_blood_group=blood_request.blood_group,
        )

    if _find_opt_in(db, donor_id, request_id):
        raise DuplicateOptInError(
            "You have already opted in to this request",
            donor_id=donor_id,
            request_id=request_id,
        )

    record = OptIn(donor_id=donor_id, request_id=request_id, opted_at=now.isoformat())
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # A concurrent opt-in for the same pair committed first
        if _find_opt_in(db, donor_id, request_id):
            logger.info(f"Duplicate opt-in rejected by constraint: donor {donor_id}, request {request_id}")
            raise DuplicateOptInError(
                "You have already opted in to this request",
                donor_id=donor_id,
                request_id=request_id,
            )
        raise
    db.refresh(record)
    logger.info(f"Donor {donor_id} opted in to request {request_id}")

    admins = get_admins(db)
    effects = [
        Push(
            audience="admins",
            event="donor_opted_in",
            payload={
                "message": f"{donor.name} opted in for {blood_request.blood_group} request",
                "donorName": donor.name,
                "bloodGroup": blood_request.blood_group,
                "requestId": request_id,
            },
        ),
        Notify(
            recipient_ids=[a.id for a in admins],
            type="donor_opted_in",
            title="Donor Opted In",
            message=(
                f"{donor.name} opted in for {blood_request.requestor_name}'s "
                f"{blood_request.blood_group} request"
            ),
            metadata={"requestId": request_id, "donorId": donor_id, "optInId": record.id},
        ),
    ]
    return TransitionResult(record, effects)


def list_opted_in_donors(db: Session, request_id: str) -> list[tuple[OptIn, User]]:
    """Assignment candidate pool: every opt-in for the request with its donor, in opt-in order."""
    return (
        db.query(OptIn, User)
        .join(User, User.id == OptIn.donor_id)
        .filter(OptIn.request_id == request_id)
        .order_by(OptIn.opted_at.asc(), OPT_IN_SEQUENCE.asc())
        .all()
    )


def has_opted_in(db: Session, donor_id: str, request_id: str) -> bool:
    return _find_opt_in(db, donor_id, request_id) is not None


def list_donor_opt_ins(db: Session, donor_id: str) -> list[OptIn]:
    """A donor's opt-in history, newest first."""
    return db.query(OptIn).filter(
        OptIn.donor_id == donor_id,
    ).order_by(OptIn.opted_at.desc(), OPT_IN_SEQUENCE.desc()).all()


def find_matching_requests(db: Session, donor: User, now: datetime | None = None) -> list[BloodRequest]:
    """Approved, upcoming requests for the donor's blood group, most urgent first."""
    now = now or datetime.utcnow()
    return (
        db.query(BloodRequest)
        .filter(
            BloodRequest.blood_group == donor.blood_group,
            BloodRequest.status == RequestStatus.APPROVED.value,
            BloodRequest.date_time >= now.isoformat(),
            BloodRequest.deleted_at.is_(None),
        )
        .order_by(URGENCY_ORDER.desc(), BloodRequest.created_at.asc())
        .all()
    )
