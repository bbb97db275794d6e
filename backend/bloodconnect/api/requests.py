"""Blood request API endpoints."""
from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from bloodconnect.api.deps import (
    get_db,
    get_dispatcher,
    get_photo_storage,
    require_admin,
    require_donor,
)
from bloodconnect.models.user import User
from bloodconnect.schemas.request import (
    AssignDonorRequest,
    BloodRequestCreate,
    BloodRequestListResponse,
    BloodRequestResponse,
    MatchingRequestResponse,
    OptedInDonorResponse,
    OptInResponse,
    RejectRequest,
)
from bloodconnect.services import assignment, opt_in_ledger, request_lifecycle
from bloodconnect.services.eligibility import is_donor_eligible
from bloodconnect.services.errors import WorkflowError
from bloodconnect.services.fanout import EffectDispatcher
from bloodconnect.services.photos import LocalPhotoStorage, PhotoRejectedError

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=BloodRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    request_data: BloodRequestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Submit a blood request (no auth required)."""
    result = request_lifecycle.submit(db, request_data.model_dump())
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


@router.get("", response_model=BloodRequestListResponse)
def list_requests(
    status_filter: str | None = Query(None, alias="status", description="pending, approved, rejected, donated"),
    blood_group: str | None = Query(None),
    urgency: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """List blood requests with optional filters."""
    requests, total = request_lifecycle.list_requests(
        db,
        status=status_filter,
        blood_group=blood_group,
        urgency=urgency,
        limit=limit,
        offset=offset,
    )
    return BloodRequestListResponse(
        requests=[BloodRequestResponse.model_validate(r) for r in requests],
        total=total,
        limit=limit,
        offset=offset,
    )


# Donor endpoints

@router.get("/matching", response_model=list[MatchingRequestResponse])
def get_matching_requests(
    db: Session = Depends(get_db),
    donor: User = Depends(require_donor),
):
    """Approved upcoming requests for the current donor's blood group."""
    return opt_in_ledger.find_matching_requests(db, donor)


@router.get("/opt-ins/me", response_model=list[OptInResponse])
def get_my_opt_ins(
    db: Session = Depends(get_db),
    donor: User = Depends(require_donor),
):
    """Current donor's opt-in history."""
    return opt_in_ledger.list_donor_opt_ins(db, donor.id)


@router.post("/{request_id}/opt-in", response_model=OptInResponse, status_code=status.HTTP_201_CREATED)
def opt_in_to_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    donor: User = Depends(require_donor),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Opt in to donate for an approved request."""
    result = opt_in_ledger.opt_in(db, donor.id, request_id)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


# Admin endpoints

@router.get("/{request_id}", response_model=BloodRequestResponse)
def get_request(
    request_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return request_lifecycle.get_request(db, request_id)


@router.post("/{request_id}/approve", response_model=BloodRequestResponse)
def approve_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Approve a pending request and alert eligible donors."""
    result = request_lifecycle.approve(db, request_id)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


@router.post("/{request_id}/reject", response_model=BloodRequestResponse)
def reject_request(
    request_id: str,
    body: RejectRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Reject a pending request."""
    result = request_lifecycle.reject(db, request_id, body.reason)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def archive_request(
    request_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Archive (soft-delete) a request."""
    request_lifecycle.archive(db, request_id)


@router.get("/{request_id}/opt-ins", response_model=list[OptedInDonorResponse])
def list_opted_in_donors(
    request_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Assignment candidate pool for a request."""
    blood_request = request_lifecycle.get_request(db, request_id)
    return [
        OptedInDonorResponse(
            opt_in_id=record.id,
            opted_at=record.opted_at,
            donor_id=donor.id,
            name=donor.name,
            email=donor.email,
            phone=donor.phone,
            blood_group=donor.blood_group,
            eligible=is_donor_eligible(donor),
            assigned=blood_request.assigned_donor_id == donor.id,
        )
        for record, donor in opt_in_ledger.list_opted_in_donors(db, request_id)
    ]


@router.post("/{request_id}/assign", response_model=BloodRequestResponse)
def assign_donor(
    request_id: str,
    body: AssignDonorRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Assign an opted-in donor to the request."""
    result = assignment.assign(db, request_id, body.donor_id)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


@router.post("/{request_id}/reassign", response_model=BloodRequestResponse)
def reassign_donor(
    request_id: str,
    body: AssignDonorRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    """Move the assignment to another opted-in donor."""
    result = assignment.reassign(db, request_id, body.donor_id)
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity


@router.post("/{request_id}/donated", response_model=BloodRequestResponse)
async def mark_request_donated(
    request_id: str,
    background_tasks: BackgroundTasks,
    photo: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
    photo_storage: LocalPhotoStorage = Depends(get_photo_storage),
):
    """Record the donation with a proof photo; opens the donor's certificate."""
    request_lifecycle.check_completable(db, request_id)

    content = await photo.read()
    try:
        photo_ref = photo_storage.store(content, photo.filename)
    except PhotoRejectedError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    try:
        result = request_lifecycle.mark_donated(db, request_id, photo_ref)
    except WorkflowError:
        # Lost a race after the photo was stored
        photo_storage.delete(photo_ref)
        raise
    background_tasks.add_task(dispatcher.dispatch, result.effects)
    return result.entity
