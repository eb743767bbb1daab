# hospital_scheduler/services/status.py
from __future__ import annotations
from typing import Union

from ..errors import InvalidTransition
from ..models import AppointmentStatus

# completed and cancelled are terminal
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.scheduled: frozenset({AppointmentStatus.checked_in, AppointmentStatus.cancelled}),
    AppointmentStatus.checked_in: frozenset({AppointmentStatus.completed, AppointmentStatus.cancelled}),
    AppointmentStatus.completed: frozenset(),
    AppointmentStatus.cancelled: frozenset(),
}


def allowed_from(current: Union[AppointmentStatus, str]) -> list[str]:
    return sorted(s.value for s in ALLOWED_TRANSITIONS[AppointmentStatus(current)])


def can_transition(current: Union[AppointmentStatus, str], requested: Union[AppointmentStatus, str]) -> bool:
    return AppointmentStatus(requested) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def transition(current: Union[AppointmentStatus, str], requested: Union[AppointmentStatus, str]) -> AppointmentStatus:
    """Returns the new status, or raises ``InvalidTransition`` for an edge not in the table."""
    current, requested = AppointmentStatus(current), AppointmentStatus(requested)
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value, allowed_from(current))
    return requested
