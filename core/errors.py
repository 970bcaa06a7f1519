"""Error taxonomy shared by the lifecycle controller and the batch matcher."""

from typing import Optional


class EngineError(Exception):
    """Base class for errors surfaced to callers."""


class NotFound(EngineError):
    """A referenced delivery note or production batch does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class PermissionDenied(EngineError):
    """The acting role may not perform the requested transition."""

    def __init__(self, role: str, from_status: str, to_status: str):
        self.role = role
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Role '{role}' may not move a delivery note from '{from_status}' to '{to_status}'"
        )


class InvalidTransition(EngineError, ValueError):
    """The request itself is malformed (same status, unknown fields, ...)."""


class TransitionConflict(EngineError):
    """The note's status changed between read and conditional update."""

    def __init__(self, note_id: str, expected_status: str, actual_status: Optional[str] = None):
        self.note_id = note_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        detail = f" (now '{actual_status}')" if actual_status else ""
        super().__init__(
            f"Delivery note {note_id} is no longer in status '{expected_status}'{detail}"
        )


class ReferenceDataUnavailable(EngineError):
    """Formula specs or prices could not be fetched."""


class BatchImportError(EngineError):
    """The machine feed file could not be read at all."""
