# hospital_scheduler/services/booking.py
"""
The write path for appointments.

Booking and rescheduling take a per-(doctor, day) lock in the database before
reading that day's schedule, and keep it until commit, so the conflict check
and the insert/update cannot be interleaved with another writer on the same
calendar. Different doctors (or days) never wait on each other.
"""
from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Any, Mapping, Optional

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..errors import Busy, Duplicate, NotFound, SchedulingConflict, ValidationError
from .conflicts import describe_conflicts, find_conflicting
from .intervals import Interval
from .registry import create_patient, list_doctors, list_patients, require
from .schedule import get_appointment, load_schedule, storage_guard
from .slots import suggest_alternatives
from .status import transition
from .validation import (
    BOOKING_RULES, RESCHEDULE_RULES, WALK_IN_RULES, facility_today, validate_fields,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Storage lock
# ──────────────────────────────────────────────────────────────────────────────
def _insert_lock_row(db: Session, doctor_id: int, day: date) -> None:
    values = {"doctor_id": doctor_id, "day": day, "version": 0}
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert
        db.execute(pg_insert(models.ScheduleLock).values(**values).on_conflict_do_nothing())
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert
        db.execute(sqlite_insert(models.ScheduleLock).values(**values).on_conflict_do_nothing())
    elif db.get(models.ScheduleLock, (doctor_id, day)) is None:
        db.execute(insert(models.ScheduleLock).values(**values))


def lock_doctor_day(db: Session, doctor_id: int, day: date) -> None:
    """
    Serializes writers on one doctor's day until the session's transaction ends.

    Postgres: the version bump takes a row lock, bounded by lock_timeout.
    SQLite: the first write takes the database write lock, bounded by the
    connection's busy timeout. Either timeout surfaces as ``Busy``.
    """
    with storage_guard("lock_doctor_day"):
        if db.get_bind().dialect.name == "postgresql":
            db.execute(_lock_timeout_sql(settings.BOOKING_LOCK_TIMEOUT_MS))
        _insert_lock_row(db, doctor_id, day)
        db.execute(
            update(models.ScheduleLock)
            .where(models.ScheduleLock.doctor_id == doctor_id)
            .where(models.ScheduleLock.day == day)
            .values(version=models.ScheduleLock.version + 1)
            .execution_options(synchronize_session=False)
        )


def _lock_timeout_sql(ms: int):
    # SET does not take bind parameters
    return text(f"SET LOCAL lock_timeout = {int(ms)}")


# ──────────────────────────────────────────────────────────────────────────────
# Validation shared by booking and rescheduling
# ──────────────────────────────────────────────────────────────────────────────
def _check_when(clean: dict, today: date) -> Interval:
    if clean["duration_minutes"] is None:
        clean["duration_minutes"] = settings.DEFAULT_DURATION_MIN
    errors = []
    if clean["appointment_date"] < today:
        errors.append("Appointment date must be today or in the future")
    candidate = Interval(clean["appointment_time"], clean["duration_minutes"])
    if not candidate.fits_in_day:
        errors.append("Appointment must end by midnight of the same day")
    if errors:
        raise ValidationError(errors)
    return candidate


def _missing_reference(db: Session, patient_id: int, doctor_id: int) -> Exception:
    for model, pk, resource, ref in (
        (models.Patient, patient_id, "patient", "patient_id"),
        (models.Doctor, doctor_id, "doctor", "doctor_id"),
    ):
        with storage_guard(f"recheck {resource}"):
            exists = db.scalar(select(model.id).where(model.id == pk))
        if exists is None:
            return NotFound(resource, ref, pk)
    return ValidationError(["Referenced record does not exist or is still in use"])


def _conflict(
    db: Session,
    conflicts: list,
    doctor_id: int,
    day: date,
    duration: int,
    exclude_id: Optional[int] = None,
) -> SchedulingConflict:
    """Builds the 409 after the write transaction has been rolled back."""
    suggestions = suggest_alternatives(db, doctor_id, day, duration, exclude_id=exclude_id)
    return SchedulingConflict(conflicts, [t.strftime("%H:%M") for t in suggestions])


# ──────────────────────────────────────────────────────────────────────────────
# Booking
# ──────────────────────────────────────────────────────────────────────────────
def book_appointment(
    db: Session,
    data: Mapping[str, Any],
    today: Optional[date] = None,
) -> models.Appointment:
    """
    Creates a ``scheduled`` appointment.

    Raises ``ValidationError`` for malformed input or a past date,
    ``NotFound`` when the patient or doctor does not exist,
    ``SchedulingConflict`` when the interval overlaps the doctor's
    non-cancelled appointments that day, and ``Busy`` when the doctor's day
    stays locked past the configured wait.
    """
    clean = validate_fields(data, BOOKING_RULES)
    patient_id = require(db, models.Patient, clean["patient_id"], "patient", "patient_id").id
    doctor_id = require(db, models.Doctor, clean["doctor_id"], "doctor", "doctor_id").id
    candidate = _check_when(clean, today or facility_today())
    day = clean["appointment_date"]

    conflicts = None
    try:
        lock_doctor_day(db, doctor_id, day)
        schedule = load_schedule(db, doctor_id, day)
        found = find_conflicting(schedule, candidate)
        if found:
            conflicts = describe_conflicts(found)
        else:
            appt = models.Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                appointment_date=day,
                appointment_time=candidate.start,
                duration_minutes=candidate.duration,
                status=models.AppointmentStatus.scheduled,
                notes=clean["notes"] or "",
            )
            db.add(appt)
            with storage_guard("book_appointment"):
                db.commit()
    except IntegrityError as exc:
        # patient or doctor deleted after the existence check
        db.rollback()
        raise _missing_reference(db, patient_id, doctor_id) from exc
    except Exception:
        db.rollback()
        raise

    if conflicts is not None:
        db.rollback()
        logger.info(
            "Booking conflict doctor=%s day=%s %s+%smin with %s",
            doctor_id, day, candidate.start.strftime("%H:%M"), candidate.duration,
            [c["id"] for c in conflicts],
        )
        raise _conflict(db, conflicts, doctor_id, day, candidate.duration)

    logger.info(
        "Appointment booked id=%s doctor=%s patient=%s day=%s %s+%smin",
        appt.id, doctor_id, patient_id, day, candidate.start.strftime("%H:%M"), candidate.duration,
    )
    return get_appointment(db, appt.id)


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    data: Mapping[str, Any],
    today: Optional[date] = None,
) -> models.Appointment:
    """
    Moves a ``scheduled`` appointment to a new date/time/duration for the same
    doctor. Its own current slot never counts as a conflict. Omitted duration
    keeps the existing one.
    """
    appt = get_appointment(db, appointment_id)
    if appt.status != models.AppointmentStatus.scheduled:
        raise ValidationError([f"Only scheduled appointments can be rescheduled (status is {appt.status.value})"])

    payload = dict(data)
    if payload.get("duration_minutes") is None:
        payload["duration_minutes"] = appt.duration_minutes
    clean = validate_fields(payload, RESCHEDULE_RULES)
    candidate = _check_when(clean, today or facility_today())
    day = clean["appointment_date"]
    doctor_id = appt.doctor_id

    conflicts = None
    try:
        lock_doctor_day(db, doctor_id, day)
        with storage_guard("recheck appointment"):
            status_now = db.scalar(
                select(models.Appointment.status).where(models.Appointment.id == appointment_id)
            )
        if status_now is None:
            raise NotFound("appointment", "appointment_id", appointment_id)
        if status_now != models.AppointmentStatus.scheduled:
            raise Busy("Appointment changed while rescheduling, please retry")
        schedule = load_schedule(db, doctor_id, day)
        found = find_conflicting(schedule, candidate, exclude_id=appt.id)
        if found:
            conflicts = describe_conflicts(found)
        else:
            appt.appointment_date = day
            appt.appointment_time = candidate.start
            appt.duration_minutes = candidate.duration
            appt.updated_at = datetime.utcnow()
            with storage_guard("reschedule_appointment"):
                db.commit()
    except IntegrityError as exc:
        # the doctor, and with it this appointment, was deleted
        db.rollback()
        raise NotFound("appointment", "appointment_id", appointment_id) from exc
    except Exception:
        db.rollback()
        raise

    if conflicts is not None:
        db.rollback()
        logger.info(
            "Reschedule conflict appointment=%s day=%s %s+%smin with %s",
            appointment_id, day, candidate.start.strftime("%H:%M"), candidate.duration,
            [c["id"] for c in conflicts],
        )
        raise _conflict(db, conflicts, doctor_id, day, candidate.duration, exclude_id=appointment_id)

    logger.info(
        "Appointment rescheduled id=%s day=%s %s+%smin",
        appointment_id, day, candidate.start.strftime("%H:%M"), candidate.duration,
    )
    return get_appointment(db, appointment_id)


def _find_or_register_patient(db: Session, full_name: str, phone: str) -> int:
    existing = list_patients(db, phone=phone)
    if existing:
        return existing[0].id
    try:
        return create_patient(db, {"full_name": full_name, "phone": phone}).id
    except Duplicate:
        # registered by a concurrent request
        return list_patients(db, phone=phone)[0].id


def book_walk_in(
    db: Session,
    data: Mapping[str, Any],
    today: Optional[date] = None,
) -> models.Appointment:
    """
    Books a default-length visit from a name, phone and department name.

    The patient is looked up by phone and registered if new. The department's
    doctors are tried in name order, each through ``book_appointment``. When
    all of them are taken the ``SchedulingConflict`` carries every doctor's
    conflicts and the earliest free start times across the department.
    """
    clean = validate_fields(data, WALK_IN_RULES)
    today = today or facility_today()
    _check_when({**clean, "duration_minutes": None}, today)

    with storage_guard("load department"):
        dept = db.scalar(
            select(models.Department)
            .where(func.lower(models.Department.name) == clean["department"].lower())
        )
    if dept is None:
        raise NotFound("department", "department", clean["department"])
    doctor_ids = [d.id for d in list_doctors(db, dept.id)]
    if not doctor_ids:
        raise NotFound("doctor", "department", clean["department"])

    patient_id = _find_or_register_patient(db, clean["full_name"], clean["phone"])

    conflicts, suggestions = [], set()
    for doctor_id in doctor_ids:
        try:
            return book_appointment(db, {
                "patient_id": patient_id,
                "doctor_id": doctor_id,
                "appointment_date": clean["appointment_date"],
                "appointment_time": clean["appointment_time"],
                "duration_minutes": settings.DEFAULT_DURATION_MIN,
            }, today=today)
        except SchedulingConflict as exc:
            conflicts.extend(exc.conflicts)
            suggestions.update(exc.suggestions)

    logger.info(
        "Walk-in conflict department=%s day=%s %s: all %d doctors taken",
        dept.id, clean["appointment_date"], clean["appointment_time"].strftime("%H:%M"), len(doctor_ids),
    )
    raise SchedulingConflict(conflicts, sorted(suggestions)[:settings.SUGGESTION_LIMIT])


# ──────────────────────────────────────────────────────────────────────────────
# Status and deletion
# ──────────────────────────────────────────────────────────────────────────────
def change_status(db: Session, appointment_id: int, requested) -> models.Appointment:
    """
    Applies one status-machine edge. The write is a compare-and-set on the
    status that was read; losing that race raises ``Busy``.
    """
    appt = get_appointment(db, appointment_id)
    current = appt.status
    new_status = transition(current, requested)

    try:
        with storage_guard("change_status"):
            result = db.execute(
                update(models.Appointment)
                .where(models.Appointment.id == appointment_id)
                .where(models.Appointment.status == current)
                .values(status=new_status, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Busy("Appointment status changed concurrently, please retry")
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Appointment %s status %s -> %s", appointment_id, current.value, new_status.value)
    return get_appointment(db, appointment_id)


def delete_appointment(db: Session, appointment_id: int) -> None:
    """Hard delete; removing an interval can never create a conflict."""
    appt = get_appointment(db, appointment_id)
    try:
        db.delete(appt)
        with storage_guard("delete_appointment"):
            db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Appointment deleted id=%s", appointment_id)
