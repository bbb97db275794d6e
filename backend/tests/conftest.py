import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

from bloodconnect import models  # noqa: E402,F401
from bloodconnect.database import Base  # noqa: E402
from bloodconnect.models.user import User  # noqa: E402
from bloodconnect.services import request_lifecycle  # noqa: E402

NOW = datetime(2026, 6, 1, 12, 0, 0)


def build_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory():
    engine = build_engine()
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin(db):
    user = User(name="Admin One", email="admin@example.com", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_donor(db):
    counter = {"n": 0}

    def _make_donor(blood_group="O+", availability=True, last_donation_date=None, name=None):
        counter["n"] += 1
        donor = User(
            name=name or f"Donor {counter['n']}",
            email=f"donor{counter['n']}@example.com",
            phone="5550001111",
            role="donor",
            blood_group=blood_group,
            availability=1 if availability else 0,
            last_donation_date=last_donation_date,
        )
        db.add(donor)
        db.commit()
        db.refresh(donor)
        return donor

    return _make_donor


def request_payload(**overrides):
    payload = {
        "requestor_name": "Riya Patel",
        "email": "riya@example.com",
        "phone": "5551234567",
        "blood_group": "O+",
        "units": 2,
        "urgency": "high",
        "date_time": NOW + timedelta(days=2),
        "hospital_name": "City General",
        "location": "Ward 4, City General Hospital",
        "notes": None,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_request(db):
    def _make_request(approve=False, **overrides):
        blood_request = request_lifecycle.submit(db, request_payload(**overrides)).entity
        if approve:
            blood_request = request_lifecycle.approve(db, blood_request.id, now=NOW).entity
        return blood_request

    return _make_request
