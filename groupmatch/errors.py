"""
Typed failures raised by the matching engine.

Every failure carries a short machine-checkable ``code`` next to the human
readable message, so callers can branch on the kind of failure without
parsing text.
"""

from typing import Any, Dict


class MatchingError(Exception):
    """Base class for all matching engine failures."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(MatchingError):
    """Event, group, membership or registration is missing."""

    code = "not_found"


class ConflictError(MatchingError):
    """Duplicate group number or participant already assigned."""

    code = "conflict"


class InvalidOperationError(MatchingError):
    """Request is well-formed but not allowed (full group, cross-event move...)."""

    code = "invalid"


class InternalError(MatchingError):
    """Store failure during a multi-step mutation (already rolled back)."""

    code = "internal"
