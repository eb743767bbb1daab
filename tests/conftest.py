"""Shared fixtures: a throwaway SQLite file, fresh tables per test, record factories."""
import os
import tempfile
from datetime import date, timedelta

# Settings are read at import time, so the environment goes first
_DB_DIR = tempfile.mkdtemp(prefix="hospital-scheduler-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["TIMEZONE"] = "UTC"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from hospital_scheduler import models  # noqa: E402
from hospital_scheduler.database import Base, SessionLocal, engine  # noqa: E402
from hospital_scheduler.main import app  # noqa: E402
from hospital_scheduler.services.booking import book_appointment  # noqa: E402

ADMIN_TOKEN = "test-admin-token"


def future_day(days_ahead=30) -> date:
    """A bookable day far enough ahead that timezone edges never matter."""
    return date.today() + timedelta(days=days_ahead)


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def day():
    return future_day()


@pytest.fixture
def department(db):
    dept = models.Department(name="Cardiology")
    db.add(dept)
    db.commit()
    return dept


@pytest.fixture
def make_doctor(db, department):
    counter = {"value": 0}

    def _make(full_name=None):
        counter["value"] += 1
        doc = models.Doctor(
            full_name=full_name or f"Dr. Test {counter['value']}",
            department_id=department.id,
        )
        db.add(doc)
        db.commit()
        return doc.id

    return _make


@pytest.fixture
def make_patient(db):
    counter = {"value": 0}

    def _make(full_name=None):
        counter["value"] += 1
        pat = models.Patient(
            full_name=full_name or f"Patient {counter['value']}",
            phone=f"+1-555-01{counter['value']:02d}",
        )
        db.add(pat)
        db.commit()
        return pat.id

    return _make


@pytest.fixture
def doctor_id(make_doctor):
    return make_doctor("Dr. Alice Heart")


@pytest.fixture
def patient_id(make_patient):
    return make_patient("John Doe")


@pytest.fixture
def book(db, doctor_id, patient_id, day):
    """Books through the core; defaults to the fixture doctor, patient and day."""

    def _book(at, duration=30, doctor=None, patient=None, on=None):
        return book_appointment(db, {
            "patient_id": patient or patient_id,
            "doctor_id": doctor or doctor_id,
            "appointment_date": (on or day).isoformat(),
            "appointment_time": at,
            "duration_minutes": duration,
        })

    return _book
