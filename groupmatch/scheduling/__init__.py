"""Scheduling module: the periodic auto-matching sweep."""

from .auto_matching import (
    AutoMatchingSweep,
    Notifier,
    LoggingNotifier,
    SweepSummary,
    SYSTEM_TRIGGER,
    MANUAL_TRIGGER,
)

__all__ = [
    "AutoMatchingSweep",
    "Notifier",
    "LoggingNotifier",
    "SweepSummary",
    "SYSTEM_TRIGGER",
    "MANUAL_TRIGGER",
]
