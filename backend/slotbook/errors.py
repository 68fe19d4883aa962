"""
Error taxonomy for the scheduling core.

Routers stay thin: services raise these, and a single exception handler in
main.py maps them onto HTTP responses.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date


class SchedulingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationError(SchedulingError):
    """Malformed or out-of-range input. Raised before any mutation."""

    status_code = 422

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class NotFoundError(SchedulingError):
    """Missing entity, or one owned by somebody else (never distinguished)."""

    status_code = 404


class ConflictError(SchedulingError):
    status_code = 409


class NoAvailabilityError(ConflictError):
    """No bookable slot exists for the requested vendor, date and time."""


class CapacityExceededError(ConflictError):
    """The slot exists but every seat is taken."""


class InvalidTransitionError(ConflictError):
    """Booking status change not allowed from the current status."""


@dataclass(frozen=True)
class GenerationWarning:
    """
    Non-fatal slot generation problem for one rule and date.

    Returned next to the result of the triggering mutation, never raised.
    """
    rule_id: int | None
    date: date
    message: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data
