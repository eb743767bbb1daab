# hospital_scheduler/errors.py
"""
Error taxonomy of the scheduling core.

Every rejected request surfaces as one of these; callers tell them apart by
class or by ``code``. The core never retries: ``Busy`` and
``RepositoryUnavailable`` are retryable by the caller with backoff.
"""
from __future__ import annotations
from typing import Any, Optional


class SchedulerError(Exception):
    code = "SCHEDULER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "error": self.code}


class ValidationError(SchedulerError):
    """Malformed or out-of-range input."""
    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "validationErrors": self.errors}


# Name used for a malformed booking request
InvalidRequest = ValidationError


class NotFound(SchedulerError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, ref: str, value: Any):
        super().__init__(f"{resource.capitalize()} not found")
        self.resource = resource
        self.ref = ref
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "error": f"{self.resource.upper()}_NOT_FOUND",
            "missingRef": self.ref,
            "value": self.value,
        }


class Duplicate(SchedulerError):
    code = "DUPLICATE_ENTRY"

    def __init__(self, field: str):
        super().__init__(f"A record with this {field} already exists")
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field}


class SchedulingConflict(SchedulerError):
    """
    The candidate interval overlaps existing non-cancelled appointments.
    ``conflicts`` describes each offending appointment; ``suggestions`` holds
    free start times for the same duration, filled in by the booking path.
    """
    code = "TIME_CONFLICT"

    def __init__(self, conflicts: list[dict[str, Any]], suggestions: Optional[list[str]] = None):
        super().__init__("This time slot conflicts with existing appointments")
        self.conflicts = conflicts
        self.suggestions = suggestions or []

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "conflicts": self.conflicts,
            "suggestions": self.suggestions,
        }


class InvalidTransition(SchedulerError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, requested: str, allowed: list[str]):
        super().__init__(f"Cannot change status from {current} to {requested}")
        self.current = current
        self.requested = requested
        self.allowed = allowed

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "current": self.current,
            "requested": self.requested,
            "allowed": self.allowed,
        }


class RepositoryUnavailable(SchedulerError):
    code = "DATABASE_UNAVAILABLE"

    def __init__(self, message: str = "Database not available, please try again later"):
        super().__init__(message)


class Busy(SchedulerError):
    code = "BUSY"

    def __init__(self, message: str = "Schedule is busy, please retry"):
        super().__init__(message)
