# hospital_scheduler/services/conflicts.py
from __future__ import annotations
from typing import Iterable, List, Optional

from .. import models
from .intervals import Interval, overlaps


def find_conflicting(
    schedule: Iterable[models.Appointment],
    candidate: Interval,
    exclude_id: Optional[int] = None,
) -> List[models.Appointment]:
    """
    Appointments in ``schedule`` whose interval overlaps ``candidate``.

    ``schedule`` must already be free of cancelled appointments (the schedule
    repository guarantees it); status is not re-checked here. ``exclude_id``
    skips the appointment being edited in place.
    """
    return [
        appt for appt in schedule
        if appt.id != exclude_id and overlaps(Interval.of(appt), candidate)
    ]


def has_conflict(
    schedule: Iterable[models.Appointment],
    candidate: Interval,
    exclude_id: Optional[int] = None,
) -> bool:
    return any(
        appt.id != exclude_id and overlaps(Interval.of(appt), candidate)
        for appt in schedule
    )


def describe_conflicts(conflicts: Iterable[models.Appointment]) -> list[dict]:
    """Plain-data view of conflicting appointments for the 409 payload."""
    out = []
    for appt in conflicts:
        interval = Interval.of(appt)
        out.append({
            "id": appt.id,
            "doctor_id": appt.doctor_id,
            "appointment_time": appt.appointment_time.strftime("%H:%M"),
            "end_time": interval.end.strftime("%H:%M"),
            "duration_minutes": appt.duration_minutes,
            "patient_name": appt.patient.full_name if appt.patient else None,
        })
    return out
