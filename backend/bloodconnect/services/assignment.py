"""Donor assignment: one authoritative donor pointer per request.

Many donors may opt in, but only one is assigned at a time. The pointer can
be moved to another opted-in donor until a cutoff before the scheduled
donation; opt-in history is never touched.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from bloodconnect.config import get_settings
from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.enums import RequestStatus
from bloodconnect.models.user import User
from bloodconnect.services.effects import Email, Notify, TransitionResult
from bloodconnect.services.errors import (
    InvalidTransitionError,
    PreconditionError,
    ReassignmentWindowClosedError,
)
from bloodconnect.services.opt_in_ledger import check_donor_eligible, get_donor, has_opted_in
from bloodconnect.services.request_lifecycle import get_request
from bloodconnect.services.timeutil import parse_timestamp
from bloodconnect.services.transitions import guarded_update

logger = logging.getLogger(__name__)


def reassignment_cutoff(blood_request: BloodRequest, cutoff_hours: int | None = None) -> datetime:
    """Last moment (exclusive) at which the assigned donor may still be changed."""
    if cutoff_hours is None:
        cutoff_hours = get_settings().reassignment_cutoff_hours
    return parse_timestamp(blood_request.date_time) - timedelta(hours=cutoff_hours)


def is_reassignment_open(
    blood_request: BloodRequest,
    now: datetime | None = None,
    cutoff_hours: int | None = None,
) -> bool:
    """Open strictly before the cutoff; at exactly the cutoff it is closed."""
    now = now or datetime.utcnow()
    return now < reassignment_cutoff(blood_request, cutoff_hours)


def _require_approved(blood_request: BloodRequest) -> None:
    if blood_request.status != RequestStatus.APPROVED.value:
        raise InvalidTransitionError(
            "BloodRequest", blood_request.id, blood_request.status, RequestStatus.APPROVED.value
        )


def _require_candidate(db: Session, blood_request: BloodRequest, donor_id: str, now: datetime) -> User:
    """The donor must be in the opted-in pool and still eligible."""
    donor = get_donor(db, donor_id)
    if not has_opted_in(db, donor_id, blood_request.id):
        raise PreconditionError(
            "Donor has not opted in to this request",
            request_id=blood_request.id,
            donor_id=donor_id,
        )
    check_donor_eligible(donor, now)
    return donor


def _assignment_effects(blood_request: BloodRequest, donor: User) -> list:
    return [
        Notify(
            recipient_ids=[donor.id],
            type="donor_assigned",
            title="You Have Been Selected",
            message=(
                f"You have been selected to donate {blood_request.blood_group} blood at "
                f"{blood_request.hospital_name} on {blood_request.date_time}."
            ),
            metadata={"requestId": blood_request.id},
        ),
        Email(
            to=[donor.email],
            template_key="donor_selected",
            data={
                "donorName": donor.name,
                "bloodGroup": blood_request.blood_group,
                "requestorName": blood_request.requestor_name,
                "requestorEmail": blood_request.email,
                "requestorPhone": blood_request.phone,
                "hospitalName": blood_request.hospital_name,
                "location": blood_request.location,
                "dateTime": blood_request.date_time,
            },
        ),
        Email(
            to=[blood_request.email],
            template_key="donor_assigned",
            data={
                "requestorName": blood_request.requestor_name,
                "bloodGroup": blood_request.blood_group,
                "donorName": donor.name,
                "donorEmail": donor.email,
                "donorPhone": donor.phone,
            },
        ),
    ]


def assign(
    db: Session,
    request_id: str,
    donor_id: str,
    now: datetime | None = None,
) -> TransitionResult[BloodRequest]:
    """First assignment of an opted-in donor to an approved request."""
    now = now or datetime.utcnow()
    blood_request = get_request(db, request_id)
    _require_approved(blood_request)
    if blood_request.assigned_donor_id:
        raise PreconditionError(
            "A donor is already assigned; use reassign to change it",
            request_id=request_id,
            assigned_donor_id=blood_request.assigned_donor_id,
        )
    donor = _require_candidate(db, blood_request, donor_id, now)

    applied = guarded_update(
        db,
        BloodRequest,
        request_id,
        RequestStatus.APPROVED.value,
        {"assigned_donor_id": donor_id, "assigned_at": now.isoformat()},
        BloodRequest.assigned_donor_id.is_(None),
        BloodRequest.deleted_at.is_(None),
    )
    if not applied:
        db.rollback()
        current = get_request(db, request_id)
        _require_approved(current)
        raise PreconditionError(
            "Another donor was assigned concurrently",
            request_id=request_id,
            assigned_donor_id=current.assigned_donor_id,
        )

    db.commit()
    blood_request = get_request(db, request_id)
    logger.info(f"Donor {donor_id} assigned to request {request_id}")
    return TransitionResult(blood_request, _assignment_effects(blood_request, donor))


def reassign(
    db: Session,
    request_id: str,
    new_donor_id: str,
    now: datetime | None = None,
) -> TransitionResult[BloodRequest]:
    """Move the assignment to another opted-in donor before the cutoff."""
    now = now or datetime.utcnow()
    blood_request = get_request(db, request_id)
    _require_approved(blood_request)
    previous_donor_id = blood_request.assigned_donor_id
    if not previous_donor_id:
        raise PreconditionError(
            "No donor is assigned yet; use assign",
            request_id=request_id,
        )
    if previous_donor_id == new_donor_id:
        raise PreconditionError(
            "Donor is already assigned to this request",
            request_id=request_id,
            assigned_donor_id=previous_donor_id,
        )

    if not is_reassignment_open(blood_request, now):
        cutoff = reassignment_cutoff(blood_request)
        logger.info(f"Reassignment of request {request_id} refused: cutoff {cutoff.isoformat()} passed")
        raise ReassignmentWindowClosedError(
            "The reassignment window for this request has closed",
            request_id=request_id,
            cutoff=cutoff.isoformat(),
            date_time=blood_request.date_time,
        )

    donor = _require_candidate(db, blood_request, new_donor_id, now)

    applied = guarded_update(
        db,
        BloodRequest,
        request_id,
        RequestStatus.APPROVED.value,
        {"assigned_donor_id": new_donor_id, "assigned_at": now.isoformat()},
        BloodRequest.assigned_donor_id == previous_donor_id,
        BloodRequest.deleted_at.is_(None),
    )
    if not applied:
        db.rollback()
        current = get_request(db, request_id)
        _require_approved(current)
        raise PreconditionError(
            "The assignment changed concurrently",
            request_id=request_id,
            assigned_donor_id=current.assigned_donor_id,
        )

    db.commit()
    blood_request = get_request(db, request_id)
    logger.info(f"Request {request_id} reassigned from {previous_donor_id} to {new_donor_id}")

    effects = _assignment_effects(blood_request, donor)
    effects.append(Notify(
        recipient_ids=[previous_donor_id],
        type="donor_unassigned",
        title="Assignment Changed",
        message=f"Another donor will cover the {blood_request.blood_group} request at {blood_request.hospital_name}.",
        metadata={"requestId": request_id},
    ))
    return TransitionResult(blood_request, effects)
