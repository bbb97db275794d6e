import pytest

from bloodconnect.models.certificate import Certificate
from bloodconnect.services import assignment, certificates, opt_in_ledger, request_lifecycle
from bloodconnect.services.effects import Email, Notify
from bloodconnect.services.errors import InvalidTransitionError, NotFoundError
from conftest import NOW


@pytest.fixture
def pending_certificate(db, make_donor, make_request):
    donor = make_donor()
    blood_request = make_request(approve=True)
    opt_in_ledger.opt_in(db, donor.id, blood_request.id, now=NOW)
    assignment.assign(db, blood_request.id, donor.id, now=NOW)
    request_lifecycle.mark_donated(db, blood_request.id, "donations/photo.jpg", now=NOW)
    return db.query(Certificate).one()


def test_approve_moves_pending_to_approved(db, admin, pending_certificate):
    certificate = certificates.approve(db, pending_certificate.id, admin.id, now=NOW)

    assert certificate.status == "approved"
    assert certificate.approved_by == admin.id
    assert certificate.certificate_number is None


def test_approve_twice_is_invalid(db, pending_certificate):
    certificates.approve(db, pending_certificate.id, now=NOW)

    with pytest.raises(InvalidTransitionError) as exc_info:
        certificates.approve(db, pending_certificate.id, now=NOW)

    assert exc_info.value.detail["current_status"] == "approved"


def test_generate_requires_approval(db, pending_certificate):
    with pytest.raises(InvalidTransitionError):
        certificates.generate(db, pending_certificate.id, now=NOW)

    db.refresh(pending_certificate)
    assert pending_certificate.status == "pending"
    assert pending_certificate.certificate_number is None


def test_generate_is_idempotent(db, pending_certificate):
    certificates.approve(db, pending_certificate.id, now=NOW)

    first = certificates.generate(db, pending_certificate.id, now=NOW)
    number = first.certificate_number
    second = certificates.generate(db, pending_certificate.id, now=NOW)

    assert number.startswith("BC-20260601-")
    assert second.certificate_number == number
    assert second.status == "generated"
    assert db.query(Certificate).count() == 1


def test_approve_after_generate_is_invalid(db, pending_certificate):
    certificates.approve(db, pending_certificate.id, now=NOW)
    certificates.generate(db, pending_certificate.id, now=NOW)

    with pytest.raises(InvalidTransitionError):
        certificates.approve(db, pending_certificate.id, now=NOW)


def test_approve_and_generate_matches_sequential_calls(db, admin, pending_certificate):
    result = certificates.approve_and_generate(db, pending_certificate.id, admin.id, now=NOW)

    certificate = result.entity
    assert certificate.status == "generated"
    assert certificate.approved_by == admin.id
    assert certificate.approved_at == NOW.isoformat()
    assert certificate.generated_at == NOW.isoformat()
    assert certificate.certificate_number

    notify = next(e for e in result.effects if isinstance(e, Notify))
    assert notify.recipient_ids == [certificate.donor_id]
    email = next(e for e in result.effects if isinstance(e, Email))
    assert email.template_key == "certificate_ready"
    assert email.data["certificateNumber"] == certificate.certificate_number


def test_approve_and_generate_on_generated_certificate_fails(db, pending_certificate):
    certificates.approve_and_generate(db, pending_certificate.id, now=NOW)

    with pytest.raises(InvalidTransitionError):
        certificates.approve_and_generate(db, pending_certificate.id, now=NOW)


def test_certificate_listings(db, pending_certificate):
    assert [c.id for c in certificates.list_certificates(db, "pending")] == [pending_certificate.id]
    assert certificates.list_certificates(db, "generated") == []
    assert [c.id for c in certificates.list_donor_certificates(db, pending_certificate.donor_id)] == [
        pending_certificate.id
    ]


def test_unknown_certificate_is_not_found(db):
    with pytest.raises(NotFoundError):
        certificates.approve(db, "missing")
    with pytest.raises(NotFoundError):
        certificates.generate(db, "missing")
