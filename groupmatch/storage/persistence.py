"""
Result persistence and attempt history.

``replace_results`` swaps an event's whole group set for a freshly
computed one; ``record_attempt`` appends one immutable history row per
automatic run. Read accessors serve the admin and participant views.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from ..errors import NotFoundError
from ..evaluation import MatchingResult
from ..profiles import ParticipantProfile
from .models import GroupMember, MatchingAttempt, MatchingGroup, new_id
from .store import MatchingStore

logger = logging.getLogger(__name__)

ProfileLookup = Callable[[str, str], Optional[ParticipantProfile]]


@dataclass
class ParticipantGroupView:
    """A participant's own view of their group."""
    group: MatchingGroup
    match_scores: Dict[str, float]
    personality_snapshot: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group.to_dict(),
            "my_match_scores": dict(self.match_scores),
            "my_personality_snapshot": self.personality_snapshot,
        }


class ResultPersistence:
    """
    Writes matching results and reads them back.

    Attributes:
        store: Matching store
        clock: Returns the current time for created_at stamps
    """

    def __init__(self, store: MatchingStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or datetime.now

    # =========================================================================
    # Writes
    # =========================================================================

    def replace_results(self, event_id: str, result: MatchingResult) -> List[MatchingGroup]:
        """
        Replace every group of an event with the groups of a result.

        Groups are numbered 1..N in formation order; each member's score
        map holds the group's pair scores that involve that member. The
        delete and the recreation commit together.

        Args:
            event_id: Event identifier
            result: Freshly computed result

        Returns:
            The persisted groups
        """
        now = self.clock()
        groups: List[MatchingGroup] = []

        with self.store.transaction():
            deleted = self.store.delete_groups_for_event(event_id)
            if deleted:
                logger.info(f"Event {event_id}: deleted {deleted} previous groups")

            for number, candidate in enumerate(result.groups, start=1):
                group_id = new_id()
                members = [
                    GroupMember(
                        member_id=new_id(),
                        group_id=group_id,
                        participant_id=profile.participant_id,
                        registration_id=profile.registration_id,
                        snapshot=profile.to_snapshot(),
                        match_scores=candidate.scores_for(profile.participant_id),
                    )
                    for profile in candidate.members
                ]
                group = MatchingGroup(
                    group_id=group_id,
                    event_id=event_id,
                    group_number=number,
                    status=result.status,
                    group_size=candidate.size,
                    average_match_score=candidate.average_match_score,
                    min_match_score=candidate.min_match_score,
                    threshold_used=candidate.threshold_used,
                    created_at=now,
                    members=members,
                )
                self.store.save_group(group)
                groups.append(group)

        logger.info(f"Event {event_id}: persisted {len(groups)} groups")
        return groups

    def record_attempt(
        self,
        event_id: str,
        result: MatchingResult,
        triggered_by: Optional[str],
        elapsed_seconds: float,
    ) -> MatchingAttempt:
        """
        Append one history record for an automatic run.

        Args:
            event_id: Event identifier
            result: Result of the run (empty results are recorded too)
            triggered_by: Administrator id, "system" or "manual"
            elapsed_seconds: Wall-clock duration of the run

        Returns:
            The recorded attempt
        """
        stats = result.statistics
        attempt = MatchingAttempt(
            attempt_id=new_id(),
            event_id=event_id,
            attempt_number=self.store.last_attempt_number(event_id) + 1,
            status=result.status,
            total_participants=stats.total_participants,
            matched_count=stats.matched_count,
            unmatched_count=stats.unmatched_count,
            groups_formed=stats.total_groups,
            average_match_score=stats.average_match_score or None,
            highest_threshold=stats.highest_threshold_used,
            lowest_threshold=stats.lowest_threshold_used,
            matching_result=result.to_dict(),
            unmatched_participants=[
                {
                    "participant_id": p.participant_id,
                    "registration_id": p.registration_id,
                    "name": p.name,
                    "email": p.email,
                }
                for p in result.unmatched
            ],
            executed_by=triggered_by,
            execution_time=round(elapsed_seconds, 3),
            created_at=self.clock(),
        )
        self.store.append_attempt(attempt)
        logger.info(
            f"Event {event_id}: recorded attempt #{attempt.attempt_number} "
            f"({attempt.status.value}, {attempt.matched_count}/{attempt.total_participants} matched)"
        )
        return attempt

    # =========================================================================
    # Reads
    # =========================================================================

    def get_results(
        self,
        event_id: str,
        profile_lookup: Optional[ProfileLookup] = None,
    ) -> List[Dict[str, Any]]:
        """
        Current groups of an event for display.

        Args:
            event_id: Event identifier
            profile_lookup: Optional (participant_id, registration_id) -> profile
                used to attach each member's source profile

        Returns:
            One dict per group, ordered by group number
        """
        views = []
        for group in self.store.list_groups(event_id):
            view = group.to_dict()
            if profile_lookup is not None:
                for member_view, member in zip(view["members"], group.members):
                    profile = profile_lookup(member.participant_id, member.registration_id)
                    member_view["profile"] = profile.to_dict() if profile else None
            views.append(view)
        return views

    def get_participant_group(self, event_id: str, participant_id: str) -> ParticipantGroupView:
        """
        The participant's group with their personal scores.

        Raises:
            NotFoundError: Participant is in no group of the event
        """
        group = self.store.find_group_of_participant(event_id, participant_id)
        if group is None:
            raise NotFoundError("You are not assigned to any group for this event")

        member = group.find_member(participant_id)
        return ParticipantGroupView(
            group=group,
            match_scores=dict(member.match_scores),
            personality_snapshot=member.snapshot.to_dict(),
        )

    def get_attempt_history(self, event_id: str) -> List[MatchingAttempt]:
        """Every attempt of the event, newest first."""
        return self.store.list_attempts(event_id)
