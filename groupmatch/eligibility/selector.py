"""
Participant eligibility selection.

A participant is eligible for an event when they hold a paid event
registration and have completed the personality assessment. This module
is read-only: it never writes to either store.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from ..errors import InvalidOperationError, NotFoundError
from ..profiles import ParticipantProfile, NORMALIZED_TRAITS
from ..storage.store import MatchingStore
from .sources import RegistrationSource

logger = logging.getLogger(__name__)


@dataclass
class UnassignedParticipants:
    """Eligible participants not yet placed in any group of the event."""
    total: int
    participants: List[ParticipantProfile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "participants": [
                {
                    "participant_id": p.participant_id,
                    "registration_id": p.registration_id,
                    "name": p.name,
                    "email": p.email,
                    "personality_snapshot": {t: getattr(p, t) for t in NORMALIZED_TRAITS},
                }
                for p in self.participants
            ],
        }


class EligibilitySelector:
    """
    Loads the candidate population of an event.

    Attributes:
        source: Registration/assessment store
        store: Matching store (to know who is already grouped)
    """

    def __init__(self, source: RegistrationSource, store: MatchingStore):
        self.source = source
        self.store = store

    def get_eligible(self, event_id: str) -> List[ParticipantProfile]:
        """Every participant with a paid registration and a completed profile."""
        participants = self.source.get_eligible_participants(event_id)
        logger.info(f"Event {event_id}: {len(participants)} eligible participants")
        return participants

    def get_unassigned(self, event_id: str) -> UnassignedParticipants:
        """Eligible participants minus everyone already in a group of the event."""
        assigned = self.store.get_assigned_participant_ids(event_id)
        unassigned = [p for p in self.get_eligible(event_id) if p.participant_id not in assigned]
        return UnassignedParticipants(total=len(unassigned), participants=unassigned)

    def require_eligible(
        self,
        event_id: str,
        participant_id: str,
        registration_id: Optional[str] = None,
    ) -> ParticipantProfile:
        """
        Resolve an eligible participant or fail.

        Args:
            event_id: Event identifier
            participant_id: Participant identifier
            registration_id: Expected registration (optional)

        Returns:
            The participant's profile bound to their paid registration

        Raises:
            NotFoundError: No paid registration for the event
            InvalidOperationError: Paid, but no personality profile
        """
        registration = self.source.get_registration(event_id, participant_id)
        if registration is None or (
            registration_id is not None and registration.registration_id != registration_id
        ):
            raise NotFoundError("Participant has not purchased this event or payment not confirmed")

        profile = self.source.get_profile(participant_id, registration.registration_id)
        if profile is None:
            raise InvalidOperationError("Participant does not have a personality profile")
        return profile

    def find_profile(self, participant_id: str, registration_id: str) -> Optional[ParticipantProfile]:
        """Live profile of a participant, or None when it is no longer available."""
        return self.source.get_profile(participant_id, registration_id)
