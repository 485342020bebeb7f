"""
Participant profile schema.

This module defines the inputs the matching engine consumes from the
registration and personality-assessment subsystems.
"""

from .schema import (
    ParticipantProfile,
    RawScores,
    TraitSnapshot,
    Registration,
    RegistrationStatus,
    RegistrationType,
    EventRecord,
    EventStatus,
    NORMALIZED_TRAITS,
)

__all__ = [
    "ParticipantProfile",
    "RawScores",
    "TraitSnapshot",
    "Registration",
    "RegistrationStatus",
    "RegistrationType",
    "EventRecord",
    "EventStatus",
    "NORMALIZED_TRAITS",
]
