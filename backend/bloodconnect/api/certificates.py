"""Certificate API endpoints."""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from bloodconnect.api.deps import get_current_user, get_db, get_dispatcher, require_admin
from bloodconnect.models.enums import UserRole
from bloodconnect.models.user import User
from bloodconnect.schemas.certificate import CertificateResponse
from bloodconnect.services import certificates
from bloodconnect.services.fanout import EffectDispatcher

router = APIRouter(prefix="/certificates", tags=["certificates"])


@router.get("/me", response_model=list[CertificateResponse])
def get_my_certificates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Certificates earned by the current donor."""
    return certificates.list_donor_certificates(db, current_user.id)


@router.get("", response_model=list[CertificateResponse])
def list_certificates(
    status_filter: str | None = Query(None, alias="status", description="pending, approved, generated"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return certificates.list_certificates(db, status_filter)


@router.get("/{certificate_id}", response_model=CertificateResponse)
def get_certificate(
    certificate_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a certificate (its donor or any admin)."""
    certificate = certificates.get_certificate(db, certificate_id)
    if current_user.role != UserRole.ADMIN.value and certificate.donor_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Certificate not found",
        )
    return certificate


@router.post("/{certificate_id}/approve", response_model=CertificateResponse)
def approve_certificate(
    certificate_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return certificates.approve(db, certificate_id, admin.id)


@router.post("/{certificate_id}/generate", response_model=CertificateResponse)
def generate_certificate(
    certificate_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Generate an approved certificate (repeat calls return the same number)."""
    return certificates.generate(db, certificate_id)


@router.post("/{certificate_id}/approve-and-generate", response_model=CertificateResponse)
def approve_and_generate_certificate(
    certificate_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Approve, generate and notify the donor in one step."""
    result = certificates.approve_and_generate(db, certificate_id, admin.id)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity
