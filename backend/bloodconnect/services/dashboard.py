"""Aggregate figures for the admin dashboard."""
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.certificate import Certificate
from bloodconnect.models.enums import BloodGroup, CertificateStatus, RequestStatus, UserRole
from bloodconnect.models.opt_in import OptIn
from bloodconnect.models.user import User
from bloodconnect.services.eligibility import is_donor_eligible

OPEN_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


def request_stats(db: Session, now: datetime | None = None) -> dict:
    """Counts of live requests by status, donors, opt-ins and certificates.

    Archived requests are left out of every request figure.
    """
    now = now or datetime.utcnow()
    by_status = dict(
        db.query(BloodRequest.status, func.count(BloodRequest.id))
        .filter(BloodRequest.deleted_at.is_(None))
        .group_by(BloodRequest.status)
        .all()
    )
    requests = {s.value: by_status.get(s.value, 0) for s in RequestStatus}
    requests["total"] = sum(by_status.values())

    certificates_by_status = dict(
        db.query(Certificate.status, func.count(Certificate.id)).group_by(Certificate.status).all()
    )
    certificates = {s.value: certificates_by_status.get(s.value, 0) for s in CertificateStatus}

    donors = db.query(User).filter(User.role == UserRole.DONOR.value).all()

    return {
        "requests": requests,
        "donors": {
            "total": len(donors),
            "available": sum(1 for d in donors if d.availability),
            "eligible": sum(1 for d in donors if is_donor_eligible(d, now)),
        },
        "opt_ins": db.query(func.count(OptIn.id)).scalar() or 0,
        "certificates": certificates,
    }


def blood_group_stats(db: Session) -> list[dict]:
    """Open demand per blood group next to the donors who could meet it.

    Every blood group is listed, in the fixed enumeration order, even with no demand.
    """
    demand = {
        (group, status): (count, units)
        for group, status, count, units in (
            db.query(
                BloodRequest.blood_group,
                BloodRequest.status,
                func.count(BloodRequest.id),
                func.coalesce(func.sum(BloodRequest.units), 0),
            )
            .filter(
                BloodRequest.deleted_at.is_(None),
                BloodRequest.status.in_(OPEN_STATUSES),
            )
            .group_by(BloodRequest.blood_group, BloodRequest.status)
            .all()
        )
    }
    available = dict(
        db.query(User.blood_group, func.count(User.id))
        .filter(User.role == UserRole.DONOR.value, User.availability == 1)
        .group_by(User.blood_group)
        .all()
    )

    stats = []
    for group in BloodGroup:
        pending_count, pending_units = demand.get((group.value, RequestStatus.PENDING.value), (0, 0))
        approved_count, approved_units = demand.get((group.value, RequestStatus.APPROVED.value), (0, 0))
        stats.append({
            "blood_group": group.value,
            "pending_requests": pending_count,
            "approved_requests": approved_count,
            "units_needed": pending_units + approved_units,
            "available_donors": available.get(group.value, 0),
        })
    return stats
