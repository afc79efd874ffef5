"""Booking engine errors.

Every error carries a machine-readable rule name and a human message, the same
shape the API returns as {"detail": {"rule": ..., "message": ...}}.
"""

from fastapi import status


class EngineError(Exception):
    """Base class for errors raised by the booking and session services."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    rule: str = "engine_error"

    def __init__(self, message: str, rule: str | None = None):
        self.message = message
        if rule is not None:
            self.rule = rule
        super().__init__(message)


class NotFound(EngineError):
    status_code = status.HTTP_404_NOT_FOUND
    rule = "not_found"


class InvalidSlot(EngineError):
    """The requested time is not inside any active availability window."""

    status_code = 422
    rule = "outside_availability"


class SlotFull(EngineError):
    """Capacity was exhausted when the allocation transaction ran. Safe to retry another slot."""

    status_code = status.HTTP_409_CONFLICT
    rule = "slot_full"


class SlotBusy(EngineError):
    """Could not enter the slot's critical section in time."""

    status_code = status.HTTP_409_CONFLICT
    rule = "slot_busy"


class Forbidden(EngineError):
    status_code = status.HTTP_403_FORBIDDEN
    rule = "forbidden"


class InvalidTransition(EngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    rule = "invalid_transition"


class CollaboratorFailure(EngineError):
    """A calendar, notification or messaging call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    rule = "collaborator_failure"

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")
