# hospital_scheduler/services/schedule.py
"""
Schedule repository: the read side of appointments and the one place that
turns driver failures into ``RepositoryUnavailable`` / ``Busy``.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import date
from typing import List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..errors import Busy, NotFound, RepositoryUnavailable

logger = logging.getLogger(__name__)

# lock_not_available, deadlock_detected, serialization_failure
_PG_CONTENTION_CODES = {"55P03", "40P01", "40001"}


def is_lock_contention(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _PG_CONTENTION_CODES:
        return True
    return "database is locked" in str(orig).lower()


@contextmanager
def storage_guard(operation: str):
    """Re-raises driver errors as the core's retryable error kinds."""
    try:
        yield
    except OperationalError as exc:
        if is_lock_contention(exc):
            logger.warning("Lock contention during %s: %s", operation, exc.orig)
            raise Busy() from exc
        logger.error("Storage failure during %s: %s", operation, exc.orig)
        raise RepositoryUnavailable() from exc
    except InterfaceError as exc:
        logger.error("Storage connection failure during %s: %s", operation, exc.orig)
        raise RepositoryUnavailable() from exc


def _with_display(stmt):
    return stmt.options(
        selectinload(models.Appointment.patient),
        selectinload(models.Appointment.doctor).selectinload(models.Doctor.department),
    )


def load_schedule(db: Session, doctor_id: int, day: date) -> List[models.Appointment]:
    """
    Non-cancelled appointments of ``doctor_id`` on ``day``, by start time.
    Every conflict check reads through here, so cancelled rows are excluded
    the same way everywhere.
    """
    stmt = _with_display(
        select(models.Appointment)
        .where(models.Appointment.doctor_id == doctor_id)
        .where(models.Appointment.appointment_date == day)
        .where(models.Appointment.status != models.AppointmentStatus.cancelled)
        .order_by(models.Appointment.appointment_time.asc())
    )
    with storage_guard("load_schedule"):
        schedule = list(db.scalars(stmt))
    logger.debug("Schedule doctor=%s day=%s -> %d appointments", doctor_id, day, len(schedule))
    return schedule


def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    with storage_guard("get_appointment"):
        appt = db.scalars(
            _with_display(select(models.Appointment).where(models.Appointment.id == appointment_id))
        ).first()
    if appt is None:
        raise NotFound("appointment", "appointment_id", appointment_id)
    return appt


def list_appointments(
    db: Session,
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    day: Optional[date] = None,
    status: Optional[models.AppointmentStatus] = None,
) -> List[models.Appointment]:
    stmt = select(models.Appointment)
    if doctor_id is not None:
        stmt = stmt.where(models.Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        stmt = stmt.where(models.Appointment.patient_id == patient_id)
    if day is not None:
        stmt = stmt.where(models.Appointment.appointment_date == day)
    if status is not None:
        stmt = stmt.where(models.Appointment.status == status)
    stmt = _with_display(stmt).order_by(
        models.Appointment.appointment_date.desc(),
        models.Appointment.appointment_time.desc(),
    )
    with storage_guard("list_appointments"):
        return list(db.scalars(stmt))


def appointment_stats(db: Session, today: date) -> dict:
    with storage_guard("appointment_stats"):
        total = db.scalar(select(func.count(models.Appointment.id))) or 0
        today_count = db.scalar(
            select(func.count(models.Appointment.id))
            .where(models.Appointment.appointment_date == today)
        ) or 0
        rows = db.execute(
            select(models.Appointment.status, func.count(models.Appointment.id))
            .group_by(models.Appointment.status)
        ).all()
    by_status = {s.value: 0 for s in models.AppointmentStatus}
    for status, count in rows:
        by_status[models.AppointmentStatus(status).value] = count
    return {"total": total, "today": today_count, "byStatus": by_status}


def purge_cancelled(db: Session, before: date) -> int:
    """Hard-deletes cancelled appointments dated before ``before``. Commits."""
    with storage_guard("purge_cancelled"):
        result = db.execute(
            delete(models.Appointment)
            .where(models.Appointment.status == models.AppointmentStatus.cancelled)
            .where(models.Appointment.appointment_date < before)
        )
        db.commit()
    return result.rowcount or 0


def purge_schedule_locks(db: Session, before: date) -> int:
    """Drops lock rows for days that can no longer be booked. Commits."""
    with storage_guard("purge_schedule_locks"):
        result = db.execute(
            delete(models.ScheduleLock).where(models.ScheduleLock.day < before)
        )
        db.commit()
    return result.rowcount or 0
