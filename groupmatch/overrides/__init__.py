"""Overrides module: administrator edits of persisted groups."""

from .manual import ManualOverrideService, OverrideResult, BulkAssignResult

__all__ = [
    "ManualOverrideService",
    "OverrideResult",
    "BulkAssignResult",
]
