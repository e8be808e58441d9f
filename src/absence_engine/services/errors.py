"""Error taxonomy for the absence engine.

Every error carries a stable ``code`` so the API layer can render a
specific message. Not-found and cross-organisation access are reported the
same way.
"""

from __future__ import annotations

from typing import Any


class AbsenceEngineError(Exception):
    """Base class for recoverable engine errors."""

    code = "ABSENCE_ENGINE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class NotFoundError(AbsenceEngineError):
    """Raised when an entity does not exist or belongs to another organisation."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidTransitionError(AbsenceEngineError):
    """Raised when an action is not legal for a case's current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, action: str, reason: str | None = None):
        self.from_status = from_status
        self.action = action
        self.reason = reason
        msg = f"Cannot apply '{action}' to a case in status '{from_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidOverrideError(AbsenceEngineError):
    """Raised for illegal changes to milestone configuration rows."""

    code = "INVALID_OVERRIDE"


class ValidationError(AbsenceEngineError):
    """Raised for malformed input."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)
