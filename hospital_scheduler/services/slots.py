# hospital_scheduler/services/slots.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..errors import ValidationError
from .conflicts import has_conflict
from .intervals import Interval, from_minutes
from .registry import require
from .schedule import load_schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    start: time
    available: bool


def build_grid(open_hour: int, close_hour: int, step_minutes: int) -> List[time]:
    """Start times of every ``step_minutes`` cell that fits between open and close."""
    start, stop = open_hour * 60, close_hour * 60
    grid = []
    cur = start
    while cur + step_minutes <= stop:
        grid.append(from_minutes(cur))
        cur += step_minutes
    return grid


def classify_grid(
    schedule: Iterable[models.Appointment],
    grid: Iterable[time],
    duration_minutes: int,
    close_minute: int,
    exclude_id: Optional[int] = None,
) -> List[Slot]:
    """
    Marks each grid start available iff an appointment of ``duration_minutes``
    starting there ends by closing time and overlaps nothing in ``schedule``.
    A cell only partly covered by a booking is unavailable.
    """
    schedule = list(schedule)
    out = []
    for start in grid:
        candidate = Interval(start, duration_minutes)
        available = (
            candidate.end_minute <= close_minute
            and not has_conflict(schedule, candidate, exclude_id=exclude_id)
        )
        out.append(Slot(start=start, available=available))
    return out


def generate_slots(
    db: Session,
    doctor_id: int,
    day: date,
    granularity_minutes: Optional[int] = None,
    duration_minutes: Optional[int] = None,
    exclude_id: Optional[int] = None,
) -> List[Slot]:
    """
    The clinic grid for ``doctor_id`` on ``day`` with availability.

    Read-only: a slot reported free can still be taken before the caller books
    it; the booking transaction re-checks at write time.
    """
    require(db, models.Doctor, doctor_id, "doctor", "doctor_id")
    step = settings.SLOT_MINUTES if granularity_minutes is None else granularity_minutes
    duration = step if duration_minutes is None else duration_minutes
    errors = []
    if step <= 0:
        errors.append("Slot granularity must be a positive number of minutes")
    if duration <= 0:
        errors.append("Duration must be a positive number of minutes")
    if errors:
        raise ValidationError(errors)

    schedule = load_schedule(db, doctor_id, day)
    grid = build_grid(settings.CLINIC_OPEN_HOUR, settings.CLINIC_CLOSE_HOUR, step)
    slots = classify_grid(
        schedule, grid, duration, settings.CLINIC_CLOSE_HOUR * 60, exclude_id=exclude_id
    )
    logger.debug(
        "Slots doctor=%s day=%s step=%s duration=%s free=%d/%d",
        doctor_id, day, step, duration, sum(s.available for s in slots), len(slots),
    )
    return slots


def suggest_alternatives(
    db: Session,
    doctor_id: int,
    day: date,
    duration_minutes: int,
    limit: Optional[int] = None,
    exclude_id: Optional[int] = None,
) -> List[time]:
    """First free start times on ``day`` for the requested duration."""
    limit = settings.SUGGESTION_LIMIT if limit is None else limit
    slots = generate_slots(
        db, doctor_id, day, duration_minutes=duration_minutes, exclude_id=exclude_id
    )
    return [s.start for s in slots if s.available][:limit]
