"""Certificate issuance pipeline: pending -> approved -> generated."""
import logging
import uuid
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bloodconnect.models.blood_request import BloodRequest
from bloodconnect.models.certificate import Certificate
from bloodconnect.models.enums import CertificateStatus
from bloodconnect.services.effects import Email, Notify, TransitionResult
from bloodconnect.services.errors import InvalidTransitionError, NotFoundError
from bloodconnect.services.transitions import guarded_update

logger = logging.getLogger(__name__)

NUMBER_ALLOCATION_ATTEMPTS = 3


def get_certificate(db: Session, certificate_id: str) -> Certificate:
    certificate = db.query(Certificate).filter(Certificate.id == certificate_id).first()
    if not certificate:
        raise NotFoundError("Certificate not found", certificate_id=certificate_id)
    return certificate


def list_certificates(db: Session, status: str | None = None) -> list[Certificate]:
    """All certificates, optionally filtered by status, newest first."""
    query = db.query(Certificate)
    if status:
        query = query.filter(Certificate.status == status)
    return query.order_by(Certificate.created_at.desc()).all()


def list_donor_certificates(db: Session, donor_id: str) -> list[Certificate]:
    return db.query(Certificate).filter(
        Certificate.donor_id == donor_id,
    ).order_by(Certificate.created_at.desc()).all()


def issue_for_donation(
    db: Session,
    blood_request: BloodRequest,
    donor_id: str,
    donation_date: date,
) -> Certificate:
    """Create the pending certificate for a completed donation.

    Runs inside the caller's transaction; nothing is committed here.
    """
    certificate = Certificate(
        donor_id=donor_id,
        request_id=blood_request.id,
        donation_date=donation_date.isoformat(),
        blood_group=blood_request.blood_group,
        units=blood_request.units,
        hospital_name=blood_request.hospital_name,
        status=CertificateStatus.PENDING.value,
    )
    db.add(certificate)
    db.flush()
    return certificate


def allocate_certificate_number(on: date) -> str:
    return f"BC-{on:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def approve(
    db: Session,
    certificate_id: str,
    admin_id: str | None = None,
    now: datetime | None = None,
) -> Certificate:
    """Admin approval: pending -> approved."""
    now = now or datetime.utcnow()
    applied = guarded_update(
        db,
        Certificate,
        certificate_id,
        CertificateStatus.PENDING.value,
        {
            "status": CertificateStatus.APPROVED.value,
            "approved_at": now.isoformat(),
            "approved_by": admin_id,
        },
    )
    if not applied:
        db.rollback()
        current = get_certificate(db, certificate_id)
        logger.info(f"Refused to approve certificate {certificate_id} in status {current.status}")
        raise InvalidTransitionError(
            "Certificate", certificate_id, current.status, CertificateStatus.PENDING.value
        )

    db.commit()
    certificate = get_certificate(db, certificate_id)
    db.refresh(certificate)
    logger.info(f"Certificate {certificate_id} approved by {admin_id}")
    return certificate


def generate(db: Session, certificate_id: str, now: datetime | None = None) -> Certificate:
    """Generate an approved certificate, allocating its number exactly once.

    Generating an already generated certificate returns it unchanged.
    """
    now = now or datetime.utcnow()
    certificate = get_certificate(db, certificate_id)
    if certificate.status == CertificateStatus.GENERATED.value:
        return certificate
    if certificate.status != CertificateStatus.APPROVED.value:
        raise InvalidTransitionError(
            "Certificate", certificate_id, certificate.status, CertificateStatus.APPROVED.value
        )

    for attempt in range(1, NUMBER_ALLOCATION_ATTEMPTS + 1):
        number = allocate_certificate_number(now.date())
        try:
            applied = guarded_update(
                db,
                Certificate,
                certificate_id,
                CertificateStatus.APPROVED.value,
                {
                    "status": CertificateStatus.GENERATED.value,
                    "certificate_number": number,
                    "generated_at": now.isoformat(),
                },
                Certificate.certificate_number.is_(None),
            )
        except IntegrityError:
            db.rollback()
            logger.warning(f"Certificate number collision on attempt {attempt}: {number}")
            continue

        if not applied:
            # Lost a race with another generate (or a status change)
            db.rollback()
            current = get_certificate(db, certificate_id)
            if current.status == CertificateStatus.GENERATED.value:
                return current
            raise InvalidTransitionError(
                "Certificate", certificate_id, current.status, CertificateStatus.APPROVED.value
            )

        db.commit()
        db.refresh(certificate)
        logger.info(f"Certificate {certificate_id} generated as {number}")
        return certificate

    raise RuntimeError(f"Could not allocate a unique certificate number for {certificate_id}")


def approve_and_generate(
    db: Session,
    certificate_id: str,
    admin_id: str | None = None,
    now: datetime | None = None,
) -> TransitionResult[Certificate]:
    """Approve then generate, and tell the donor their certificate is ready."""
    approve(db, certificate_id, admin_id, now)
    certificate = generate(db, certificate_id, now)

    donor = certificate.donor
    effects = [
        Notify(
            recipient_ids=[certificate.donor_id],
            type="certificate_ready",
            title="Donation Certificate Ready",
            message=f"Your certificate {certificate.certificate_number} for the donation on {certificate.donation_date} is ready.",
            metadata={"certificateId": certificate.id, "requestId": certificate.request_id},
        ),
    ]
    if donor and donor.email:
        effects.append(Email(
            to=[donor.email],
            template_key="certificate_ready",
            data={
                "donorName": donor.name,
                "certificateNumber": certificate.certificate_number,
                "donationDate": certificate.donation_date,
                "bloodGroup": certificate.blood_group,
                "units": certificate.units,
                "hospitalName": certificate.hospital_name,
            },
        ))
    return TransitionResult(certificate, effects)
