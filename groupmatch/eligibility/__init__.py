"""Eligibility module: who can be matched for an event."""

from .sources import (
    RegistrationSource,
    DataFrameRegistrationSource,
    load_registration_source,
    profiles_to_frame,
)
from .selector import EligibilitySelector, UnassignedParticipants

__all__ = [
    "RegistrationSource",
    "DataFrameRegistrationSource",
    "load_registration_source",
    "profiles_to_frame",
    "EligibilitySelector",
    "UnassignedParticipants",
]
