# hospital_scheduler/services/validation.py
"""
Field rules as data, checked by one function.

Each rule table maps a field name to a ``FieldRule``. ``validate_fields``
sanitizes, coerces and checks every field, collects all messages and raises a
single ``ValidationError`` if any failed.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Mapping, Optional, Pattern

import pytz
from dateutil import parser as dtparser

from ..config import settings
from ..errors import ValidationError

_TAG_RE = re.compile(r"<[^>]*>")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9](:00)?$")
PHONE_RE = re.compile(r"^\+?[0-9][0-9\-\s().]{5,18}[0-9]$")


@dataclass(frozen=True)
class FieldRule:
    label: str
    kind: str = "text"  # text | int | email | date | time
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    pattern: Optional[Pattern[str]] = None
    message: Optional[str] = None
    strip_html: bool = False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _coerce(value: Any, rule: FieldRule) -> Any:
    """Returns the typed value or raises ValueError with a user-facing message."""
    if rule.kind == "int":
        if isinstance(value, bool):
            raise ValueError(f"{rule.label} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{rule.label} must be an integer")
        if isinstance(value, float) and number != value:
            raise ValueError(f"{rule.label} must be an integer")
        return number
    if rule.kind == "date":
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        text = str(value).strip()
        if not _DATE_RE.match(text):
            raise ValueError(f"{rule.label} must be in YYYY-MM-DD format")
        try:
            return dtparser.isoparse(text).date()
        except ValueError:
            raise ValueError(f"{rule.label} is not a valid calendar date")
    if rule.kind == "time":
        if isinstance(value, time):
            if value.second or value.microsecond:
                raise ValueError(f"{rule.label} must be in HH:MM format")
            return value.replace(tzinfo=None)
        text = str(value).strip()
        if not _TIME_RE.match(text):
            raise ValueError(f"{rule.label} must be in HH:MM format")
        hours, minutes = text.split(":")[:2]
        return time(int(hours), int(minutes))
    # text / email
    text = str(value).strip()
    if rule.strip_html:
        text = _TAG_RE.sub("", text).strip()
    if rule.kind == "email" and text and not _EMAIL_RE.match(text):
        raise ValueError(f"{rule.label} must be a valid email address")
    return text


def validate_fields(data: Mapping[str, Any], rules: Mapping[str, FieldRule]) -> dict[str, Any]:
    """
    Checks ``data`` against ``rules`` and returns the cleaned values for every
    field named in ``rules`` (missing optional fields come back as ``None``).
    Fields not named in ``rules`` are dropped.
    """
    errors: list[str] = []
    cleaned: dict[str, Any] = {}

    for field, rule in rules.items():
        value = data.get(field)
        if _is_blank(value):
            if rule.required:
                errors.append(f"{rule.label} is required")
            cleaned[field] = None
            continue

        try:
            value = _coerce(value, rule)
        except ValueError as exc:
            errors.append(rule.message or str(exc))
            continue

        if isinstance(value, str):
            if rule.required and value == "":
                errors.append(f"{rule.label} is required")
                continue
            if rule.min_length is not None and len(value) < rule.min_length:
                errors.append(f"{rule.label} must be at least {rule.min_length} characters")
            if rule.max_length is not None and len(value) > rule.max_length:
                errors.append(f"{rule.label} cannot exceed {rule.max_length} characters")
            if rule.pattern is not None and value and not rule.pattern.match(value):
                errors.append(rule.message or f"{rule.label} format is invalid")
        elif isinstance(value, int):
            if rule.minimum is not None and value < rule.minimum:
                errors.append(rule.message or f"{rule.label} must be at least {rule.minimum}")
            elif rule.maximum is not None and value > rule.maximum:
                errors.append(rule.message or f"{rule.label} cannot exceed {rule.maximum}")

        cleaned[field] = value

    if errors:
        raise ValidationError(errors)
    return cleaned


def facility_today() -> date:
    """Current calendar day in the facility's timezone."""
    return datetime.now(pytz.timezone(settings.TIMEZONE)).date()


# ──────────────────────────────────────────────────────────────────────────────
# Rule tables
# ──────────────────────────────────────────────────────────────────────────────
_DURATION_MESSAGE = (
    f"Duration must be between {settings.MIN_DURATION_MIN} "
    f"and {settings.MAX_DURATION_MIN} minutes"
)

DEPARTMENT_RULES = {
    "name": FieldRule("Department name", required=True, min_length=2, max_length=100, strip_html=True),
}

PATIENT_RULES = {
    "full_name": FieldRule("Full name", required=True, min_length=2, max_length=255, strip_html=True),
    "phone": FieldRule(
        "Phone", required=True, max_length=20, pattern=PHONE_RE,
        message="Phone must contain 7-20 digits, spaces, dashes or parentheses",
    ),
    "email": FieldRule("Email", kind="email", max_length=255),
}

DOCTOR_RULES = {
    "full_name": FieldRule("Full name", required=True, min_length=2, max_length=255, strip_html=True),
    "department_id": FieldRule("Department ID", kind="int", minimum=1),
    "phone": FieldRule(
        "Phone", max_length=20, pattern=PHONE_RE,
        message="Phone must contain 7-20 digits, spaces, dashes or parentheses",
    ),
    "email": FieldRule("Email", kind="email", max_length=255),
}

_SCHEDULE_RULES = {
    "appointment_date": FieldRule("Appointment date", kind="date", required=True),
    "appointment_time": FieldRule("Appointment time", kind="time", required=True),
    "duration_minutes": FieldRule(
        "Duration", kind="int",
        minimum=settings.MIN_DURATION_MIN, maximum=settings.MAX_DURATION_MIN,
        message=_DURATION_MESSAGE,
    ),
}

BOOKING_RULES = {
    "patient_id": FieldRule("Patient ID", kind="int", required=True, minimum=1,
                            message="Patient ID must be a positive integer"),
    "doctor_id": FieldRule("Doctor ID", kind="int", required=True, minimum=1,
                           message="Doctor ID must be a positive integer"),
    **_SCHEDULE_RULES,
    "notes": FieldRule("Notes", max_length=settings.NOTES_MAX_LENGTH, strip_html=True),
}

RESCHEDULE_RULES = dict(_SCHEDULE_RULES)

SLOT_QUERY_RULES = {
    "doctor_id": FieldRule("Doctor ID", kind="int", required=True, minimum=1,
                           message="Doctor ID must be a positive integer"),
    "date": FieldRule("Date", kind="date", required=True),
    "duration_minutes": _SCHEDULE_RULES["duration_minutes"],
}

# Quick booking by name and phone; the patient is found or registered on the fly
WALK_IN_RULES = {
    "full_name": PATIENT_RULES["full_name"],
    "phone": PATIENT_RULES["phone"],
    "department": FieldRule("Department", required=True, max_length=100, strip_html=True),
    "appointment_date": _SCHEDULE_RULES["appointment_date"],
    "appointment_time": _SCHEDULE_RULES["appointment_time"],
}
