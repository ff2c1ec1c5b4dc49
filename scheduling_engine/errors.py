"""
Error taxonomy shared by every scheduling component.

ValidationError and ConflictError are expected and frequent: they go
straight back to the caller and are never retried by the engine.
NotFoundError and StateError signal a bad id or an illegal lifecycle
transition. StorageError is fatal to the call that triggered it.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all engine errors. ``code`` is stable for API layers."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed or out-of-range date, time, duration or field."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ConflictError(SchedulingError):
    """The requested interval is unavailable at commit time."""

    code = "CONFLICT"

    def __init__(
        self,
        message: str = "Requested time is not available",
        conflicts: Optional[list[Any]] = None,
        schedule_conflict: bool = False,
    ) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []
        self.schedule_conflict = schedule_conflict


class NotFoundError(SchedulingError):
    """Unknown booking, appointment, hearing or resource id."""

    code = "NOT_FOUND"


class StateError(SchedulingError):
    """Illegal lifecycle transition, e.g. cancelling a completed booking."""

    code = "INVALID_STATE"

    def __init__(self, message: str, valid_triggers: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.valid_triggers = valid_triggers or []


class StorageError(SchedulingError):
    """The storage collaborator failed; nothing was partially applied."""

    code = "STORAGE_ERROR"
