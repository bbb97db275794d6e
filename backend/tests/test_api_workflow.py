from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from bloodconnect.api import certificates, dashboard, deps, donors, notifications, requests
from bloodconnect.api.errors import install_error_handlers
from bloodconnect.config import get_settings
from bloodconnect.services import request_lifecycle
from bloodconnect.services.errors import PreconditionError
from bloodconnect.services.fanout import DatabaseNotificationFanout, EffectDispatcher, LoggingRealtimePush
from bloodconnect.services.photos import LocalPhotoStorage


class RecordingEmail:
    def __init__(self):
        self.sent = []

    def send(self, to, template_key, data):
        self.sent.append((to, template_key))
        return True


@pytest.fixture
def email():
    return RecordingEmail()


@pytest.fixture
def client(session_factory, email, tmp_path):
    app = FastAPI()
    install_error_handlers(app)
    for module in (requests, certificates, donors, notifications, dashboard):
        app.include_router(module.router, prefix="/api")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    dispatcher = EffectDispatcher(
        notifier=DatabaseNotificationFanout(session_factory),
        email=email,
        push=LoggingRealtimePush(),
    )
    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[deps.get_photo_storage] = lambda: LocalPhotoStorage(tmp_path)
    return TestClient(app)


def auth(user):
    settings = get_settings()
    token = jwt.encode({"sub": user.id, "type": "access"}, settings.secret_key, algorithm=settings.algorithm)
    return {"Authorization": f"Bearer {token}"}


def submission(**overrides):
    body = {
        "requestor_name": "Riya Patel",
        "email": "riya@example.com",
        "phone": "5551234567",
        "blood_group": "O+",
        "units": 2,
        "urgency": "critical",
        "date_time": (datetime.utcnow() + timedelta(days=2)).isoformat(),
        "hospital_name": "City General",
        "location": "Ward 4",
    }
    body.update(overrides)
    return body


def test_request_to_certificate_happy_path(client, admin, make_donor, email, tmp_path):
    donor = make_donor("O+")

    created = client.post("/api/requests", json=submission())
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert created.json()["status"] == "pending"
    assert (["admin@example.com"], "new_blood_request") in email.sent

    approved = client.post(f"/api/requests/{request_id}/approve", headers=auth(admin))
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert ([donor.email], "request_approved") in email.sent

    matching = client.get("/api/requests/matching", headers=auth(donor))
    assert [r["id"] for r in matching.json()] == [request_id]

    opted = client.post(f"/api/requests/{request_id}/opt-in", headers=auth(donor))
    assert opted.status_code == 201

    pool = client.get(f"/api/requests/{request_id}/opt-ins", headers=auth(admin)).json()
    assert [(c["donor_id"], c["eligible"], c["assigned"]) for c in pool] == [(donor.id, True, False)]

    assigned = client.post(f"/api/requests/{request_id}/assign", json={"donor_id": donor.id}, headers=auth(admin))
    assert assigned.status_code == 200
    assert assigned.json()["assigned_donor_id"] == donor.id

    donated = client.post(
        f"/api/requests/{request_id}/donated",
        files={"photo": ("proof.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=auth(admin),
    )
    assert donated.status_code == 200
    assert donated.json()["status"] == "donated"
    assert (tmp_path / donated.json()["proof_photo_ref"]).read_bytes() == b"jpeg-bytes"

    pending = client.get("/api/certificates", params={"status": "pending"}, headers=auth(admin)).json()
    assert len(pending) == 1
    generated = client.post(f"/api/certificates/{pending[0]['id']}/approve-and-generate", headers=auth(admin))
    assert generated.status_code == 200
    assert generated.json()["status"] == "generated"
    assert generated.json()["certificate_number"].startswith("BC-")

    mine = client.get("/api/certificates/me", headers=auth(donor)).json()
    assert [c["certificate_number"] for c in mine] == [generated.json()["certificate_number"]]

    inbox = client.get("/api/notifications", headers=auth(donor)).json()
    assert {"request_approved", "donor_assigned", "donation_completed", "certificate_ready"} <= {
        n["type"] for n in inbox
    }

    eligibility = client.get("/api/donors/me/eligibility", headers=auth(donor)).json()
    assert eligibility["eligible"] is False
    assert eligibility["last_donation_date"] == datetime.utcnow().date().isoformat()


def test_workflow_errors_carry_codes(client, admin, make_donor):
    o_pos = make_donor("O+")
    a_neg = make_donor("A-")
    request_id = client.post("/api/requests", json=submission()).json()["id"]

    early = client.post(f"/api/requests/{request_id}/opt-in", headers=auth(o_pos))
    assert early.status_code == 409
    assert early.json()["code"] == "request_not_available"

    client.post(f"/api/requests/{request_id}/approve", headers=auth(admin))

    mismatch = client.post(f"/api/requests/{request_id}/opt-in", headers=auth(a_neg))
    assert mismatch.status_code == 400
    assert mismatch.json()["code"] == "blood_group_mismatch"

    assert client.post(f"/api/requests/{request_id}/opt-in", headers=auth(o_pos)).status_code == 201
    duplicate = client.post(f"/api/requests/{request_id}/opt-in", headers=auth(o_pos))
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "duplicate_opt_in"

    twice = client.post(f"/api/requests/{request_id}/approve", headers=auth(admin))
    assert twice.status_code == 409
    assert twice.json()["code"] == "invalid_transition"
    assert twice.json()["current_status"] == "approved"


def test_invalid_submission_is_rejected(client):
    response = client.post("/api/requests", json=submission(units=11))

    assert response.status_code == 422
    assert response.json()["field"] == "units"


def test_roles_are_enforced(client, admin, make_donor):
    donor = make_donor()

    assert client.get("/api/requests").status_code == 401
    assert client.get("/api/requests", headers=auth(donor)).status_code == 403
    assert client.get("/api/requests/matching", headers=auth(admin)).status_code == 403
    assert client.get("/api/requests", headers=auth(admin)).json()["total"] == 0


def test_donor_can_toggle_availability(client, make_donor):
    donor = make_donor()

    response = client.patch("/api/donors/me/availability", json={"availability": False}, headers=auth(donor))

    assert response.status_code == 200
    assert response.json()["availability"] is False
    assert response.json()["eligible"] is False


def test_refused_completion_stores_no_photo(client, admin, tmp_path):
    request_id = client.post("/api/requests", json=submission()).json()["id"]

    response = client.post(
        f"/api/requests/{request_id}/donated",
        files={"photo": ("proof.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=auth(admin),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"
    assert list(tmp_path.rglob("*.jpg")) == []


def test_completion_lost_to_a_race_removes_the_photo(client, admin, make_donor, tmp_path, monkeypatch):
    donor = make_donor()
    request_id = client.post("/api/requests", json=submission()).json()["id"]
    client.post(f"/api/requests/{request_id}/approve", headers=auth(admin))
    client.post(f"/api/requests/{request_id}/opt-in", headers=auth(donor))
    client.post(f"/api/requests/{request_id}/assign", json={"donor_id": donor.id}, headers=auth(admin))

    def assignment_changed(db, request_id, proof_photo_ref, now=None):
        raise PreconditionError("The assigned donor changed while completing the donation")

    monkeypatch.setattr(request_lifecycle, "mark_donated", assignment_changed)

    response = client.post(
        f"/api/requests/{request_id}/donated",
        files={"photo": ("proof.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=auth(admin),
    )

    assert response.status_code == 409
    assert list(tmp_path.rglob("*.jpg")) == []


def test_dashboard_is_admin_only(client, admin, make_donor):
    donor = make_donor()
    client.post("/api/requests", json=submission())

    assert client.get("/api/dashboard/stats", headers=auth(donor)).status_code == 403

    stats = client.get("/api/dashboard/stats", headers=auth(admin)).json()
    assert stats["requests"]["pending"] == 1
    groups = client.get("/api/dashboard/blood-groups", headers=auth(admin)).json()
    assert next(g for g in groups if g["blood_group"] == "O+")["units_needed"] == 2
