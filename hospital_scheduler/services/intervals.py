# hospital_scheduler/services/intervals.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import time

MINUTES_PER_DAY = 24 * 60


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    """Minute-of-day → time. 24:00 has no ``time`` value and maps to ``time.max``."""
    if minutes == MINUTES_PER_DAY:
        return time.max
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} is outside a single day")
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True)
class Interval:
    """
    Half-open ``[start, start + duration)`` inside one calendar day, at minute
    precision. Validation (positive duration, end not past 24:00) belongs to
    the caller; this type never wraps to the next day.
    """
    start: time
    duration: int

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration

    @property
    def end(self) -> time:
        return from_minutes(self.end_minute)

    @property
    def fits_in_day(self) -> bool:
        return self.duration > 0 and self.end_minute <= MINUTES_PER_DAY

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    @classmethod
    def of(cls, appointment) -> "Interval":
        return cls(appointment.appointment_time, appointment.duration_minutes)


def overlaps(a: Interval, b: Interval) -> bool:
    # Touching intervals (one ends when the other starts) do not overlap
    return a.start_minute < b.end_minute and b.start_minute < a.end_minute


def end(interval: Interval) -> time:
    return interval.end
