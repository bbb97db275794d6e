"""Blood request lifecycle: pending -> approved | rejected, approved -> donated.

This module is the only place that changes a request's status. Every
transition is a conditional write against the status read just before it,
and returns the effects to fan out once the change has committed.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.enums import BloodGroup, RequestStatus, Urgency
from bloodconnect.models.user import User
from bloodconnect.services import certificates
from bloodconnect.services.effects import Email, Notify, Push, TransitionResult
from bloodconnect.services.eligibility import find_eligible_donors
from bloodconnect.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from bloodconnect.services.notifications import get_admins
from bloodconnect.services.timeutil import to_naive_utc
from bloodconnect.services.transitions import guarded_update

logger = logging.getLogger(__name__)

MIN_UNITS = 1
MAX_UNITS = 10

REQUIRED_TEXT_FIELDS = ("requestor_name", "email", "phone", "hospital_name", "location")


def get_request(db: Session, request_id: str) -> BloodRequest:
    """Load a live (not archived) request or raise NotFoundError."""
    blood_request = db.query(BloodRequest).filter(
        BloodRequest.id == request_id,
        BloodRequest.deleted_at.is_(None),
    ).first()
    if not blood_request:
        raise NotFoundError("Blood request not found", request_id=request_id)
    return blood_request


def list_requests(
    db: Session,
    status: str | None = None,
    blood_group: str | None = None,
    urgency: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[BloodRequest], int]:
    """List live requests with optional filters. Returns (page, total)."""
    query = db.query(BloodRequest).filter(BloodRequest.deleted_at.is_(None))
    if status:
        query = query.filter(BloodRequest.status == status)
    if blood_group:
        query = query.filter(BloodRequest.blood_group == blood_group)
    if urgency:
        query = query.filter(BloodRequest.urgency == urgency)

    total = query.count()
    page = query.order_by(BloodRequest.created_at.desc()).offset(offset).limit(limit).all()
    return page, total


def validate_request_data(data: dict[str, Any]) -> dict[str, Any]:
    """Check a submission against the fixed enumerations and ranges.

    Returns the cleaned values ready to build a BloodRequest.
    """
    cleaned: dict[str, Any] = {}
    for field in REQUIRED_TEXT_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} is required", field=field)
        cleaned[field] = value.strip()

    blood_group = data.get("blood_group")
    if isinstance(blood_group, BloodGroup):
        blood_group = blood_group.value
    if blood_group not in {g.value for g in BloodGroup}:
        raise ValidationError(f"Unknown blood group: {blood_group}", field="blood_group")
    cleaned["blood_group"] = blood_group

    units = data.get("units")
    if isinstance(units, bool) or not isinstance(units, int) or not MIN_UNITS <= units <= MAX_UNITS:
        raise ValidationError(
            f"units must be between {MIN_UNITS} and {MAX_UNITS}",
            field="units",
            value=units,
        )
    cleaned["units"] = units

    urgency = data.get("urgency") or Urgency.MEDIUM.value
    if isinstance(urgency, Urgency):
        urgency = urgency.value
    if urgency not in {u.value for u in Urgency}:
        raise ValidationError(f"Unknown urgency: {urgency}", field="urgency")
    cleaned["urgency"] = urgency

    date_time = data.get("date_time")
    if not date_time:
        raise ValidationError("date_time is required", field="date_time")
    try:
        cleaned["date_time"] = to_naive_utc(date_time).isoformat()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date_time: {date_time}", field="date_time")

    notes = data.get("notes")
    cleaned["notes"] = notes.strip() if isinstance(notes, str) and notes.strip() else None
    return cleaned


def _request_summary(blood_request: BloodRequest) -> dict[str, Any]:
    return {
        "requestId": blood_request.id,
        "requestorName": blood_request.requestor_name,
        "bloodGroup": blood_request.blood_group,
        "units": blood_request.units,
        "urgency": blood_request.urgency,
        "hospitalName": blood_request.hospital_name,
        "location": blood_request.location,
        "dateTime": blood_request.date_time,
    }


def _transition_refused(db: Session, request_id: str, required: str) -> InvalidTransitionError:
    """Build the error for a conditional write that matched no row."""
    db.rollback()
    current = get_request(db, request_id)
    logger.info(f"Refused transition on request {request_id}: status {current.status}, requires {required}")
    return InvalidTransitionError("BloodRequest", request_id, current.status, required)


def submit(db: Session, data: dict[str, Any]) -> TransitionResult[BloodRequest]:
    """Create a pending request and alert every admin."""
    cleaned = validate_request_data(data)
    blood_request = BloodRequest(status=RequestStatus.PENDING.value, **cleaned)
    db.add(blood_request)
    db.commit()
    db.refresh(blood_request)
    logger.info(f"Blood request {blood_request.id} submitted ({blood_request.blood_group} x{blood_request.units})")

    admins = get_admins(db)
    summary = _request_summary(blood_request)
    effects = [
        Push(
            audience="admins",
            event="request_created",
            payload={"message": f"New blood request: {blood_request.blood_group} needed", **summary},
        ),
        Notify(
            recipient_ids=[a.id for a in admins],
            type="request_created",
            title="New Blood Request",
            message=(
                f"{blood_request.requestor_name} needs {blood_request.blood_group} blood "
                f"({blood_request.units} units)"
            ),
            metadata={"requestId": blood_request.id},
        ),
    ]
    if admins:
        effects.append(Email(to=[a.email for a in admins], template_key="new_blood_request", data=summary))
    return TransitionResult(blood_request, effects)


def approve(db: Session, request_id: str, now: datetime | None = None) -> TransitionResult[BloodRequest]:
    """Admin approval: pending -> approved, then alert every eligible donor."""
    now = now or datetime.utcnow()
    applied = guarded_update(
        db,
        BloodRequest,
        request_id,
        RequestStatus.PENDING.value,
        {"status": RequestStatus.APPROVED.value, "approved_at": now.isoformat()},
        BloodRequest.deleted_at.is_(None),
    )
    if not applied:
        raise _transition_refused(db, request_id, RequestStatus.PENDING.value)

    db.commit()
    blood_request = get_request(db, request_id)
    logger.info(f"Blood request {request_id} approved")

    donors = find_eligible_donors(db, blood_request, now)
    summary = _request_summary(blood_request)
    effects = [
        Push(
            audience="donors",
            event="request_approved",
            payload={"message": f"{blood_request.blood_group} blood needed", **summary},
        ),
    ]
    if donors:
        effects.append(Notify(
            recipient_ids=[d.id for d in donors],
            type="request_approved",
            title="Blood Request Matches Your Group",
            message=(
                f"{blood_request.hospital_name} needs {blood_request.blood_group} blood "
                f"({blood_request.urgency} urgency). Opt in if you can help."
            ),
            metadata={"requestId": blood_request.id},
        ))
        effects.append(Email(to=[d.email for d in donors], template_key="request_approved", data=summary))
    return TransitionResult(blood_request, effects)


def reject(
    db: Session,
    request_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> TransitionResult[BloodRequest]:
    """Admin rejection: pending -> rejected, then tell the requestor why."""
    now = now or datetime.utcnow()
    reason = (reason or "").strip() or "No reason provided"
    applied = guarded_update(
        db,
        BloodRequest,
        request_id,
        RequestStatus.PENDING.value,
        {
            "status": RequestStatus.REJECTED.value,
            "rejection_reason": reason,
            "rejected_at": now.isoformat(),
        },
        BloodRequest.deleted_at.is_(None),
    )
    if not applied:
        raise _transition_refused(db, request_id, RequestStatus.PENDING.value)

    db.commit()
    blood_request = get_request(db, request_id)
    logger.info(f"Blood request {request_id} rejected: {reason}")

    effects = [
        Email(
            to=[blood_request.email],
            template_key="request_rejected",
            data={"requestorName": blood_request.requestor_name, "reason": reason},
        ),
        Push(audience="admins", event="request_rejected", payload={"requestId": blood_request.id}),
    ]
    return TransitionResult(blood_request, effects)


def check_completable(db: Session, request_id: str) -> BloodRequest:
    """Raise unless the request is approved and has an assigned donor."""
    blood_request = get_request(db, request_id)
    if blood_request.status != RequestStatus.APPROVED.value:
        logger.info(f"Refused to mark request {request_id} donated from {blood_request.status}")
        raise InvalidTransitionError(
            "BloodRequest", request_id, blood_request.status, RequestStatus.APPROVED.value
        )
    if not blood_request.assigned_donor_id:
        raise PreconditionError(
            "No donor is assigned to this request",
            request_id=request_id,
            current_status=blood_request.status,
        )
    return blood_request


def mark_donated(
    db: Session,
    request_id: str,
    proof_photo_ref: str | None,
    now: datetime | None = None,
) -> TransitionResult[BloodRequest]:
    """Record completion: approved -> donated, and open the donor's certificate.

    The status change, the donor's new last donation date and the pending
    certificate are committed together.
    """
    now = now or datetime.utcnow()
    blood_request = check_completable(db, request_id)
    if not proof_photo_ref:
        raise ValidationError("A proof-of-donation photo is required", field="proof_photo")

    donor_id = blood_request.assigned_donor_id
    applied = guarded_update(
        db,
        BloodRequest,
        request_id,
        RequestStatus.APPROVED.value,
        {
            "status": RequestStatus.DONATED.value,
            "proof_photo_ref": proof_photo_ref,
            "donated_at": now.isoformat(),
        },
        BloodRequest.assigned_donor_id == donor_id,
        BloodRequest.deleted_at.is_(None),
    )
    if not applied:
        db.rollback()
        current = get_request(db, request_id)
        if current.status != RequestStatus.APPROVED.value:
            raise InvalidTransitionError(
                "BloodRequest", request_id, current.status, RequestStatus.APPROVED.value
            )
        raise PreconditionError(
            "The assigned donor changed while completing the donation",
            request_id=request_id,
            assigned_donor_id=current.assigned_donor_id,
        )

    donation_date = now.date()
    donor = db.query(User).filter(User.id == donor_id).first()
    if donor and (not donor.last_donation_date or donor.last_donation_date < donation_date.isoformat()):
        donor.last_donation_date = donation_date.isoformat()
    certificate = certificates.issue_for_donation(db, blood_request, donor_id, donation_date)
    db.commit()

    blood_request = get_request(db, request_id)
    logger.info(f"Blood request {request_id} donated by {donor_id}; certificate {certificate.id} pending")

    admins = get_admins(db)
    effects = [
        Notify(
            recipient_ids=[donor_id],
            type="donation_completed",
            title="Thank You for Donating",
            message=(
                f"Your donation at {blood_request.hospital_name} is recorded. "
                "Your certificate is awaiting admin approval."
            ),
            metadata={"requestId": request_id, "certificateId": certificate.id},
        ),
        Notify(
            recipient_ids=[a.id for a in admins],
            type="certificate_pending",
            title="Certificate Awaiting Approval",
            message=f"Donation for request {request_id} completed; a certificate needs approval.",
            metadata={"requestId": request_id, "certificateId": certificate.id},
        ),
        Push(audience="admins", event="request_donated", payload={"requestId": request_id}),
    ]
    return TransitionResult(blood_request, effects)


def archive(db: Session, request_id: str, now: datetime | None = None) -> BloodRequest:
    """Soft-delete a request. Opt-ins and certificates keep pointing at it."""
    now = now or datetime.utcnow()
    blood_request = get_request(db, request_id)
    blood_request.deleted_at = now.isoformat()
    db.commit()
    logger.info(f"Blood request {request_id} archived in status {blood_request.status}")
    return blood_request
