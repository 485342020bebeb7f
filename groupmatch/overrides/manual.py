"""
Manual overrides of matching results.

Administrators can assign, move and remove participants and create empty
groups after (or instead of) an automatic run. Every operation validates,
mutates and re-aggregates inside one store transaction:

    validate -> update sibling score maps -> save members
             -> recompute group statistics -> delete group if empty

Either all of it is committed or none of it is. Store failures are
re-raised as InternalError once the transaction has rolled back.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Any, Iterator, List, Optional, Sequence

from ..configs import MatchingConfig
from ..errors import (
    ConflictError,
    InternalError,
    InvalidOperationError,
    MatchingError,
    NotFoundError,
)
from ..eligibility import EligibilitySelector
from ..evaluation import StatisticsAggregator
from ..profiles import TraitSnapshot
from ..scoring import ScoreCalculator
from ..storage import GroupMember, MatchingGroup, MatchingStatus, MatchingStore, new_id

logger = logging.getLogger(__name__)


@dataclass
class OverrideResult:
    """Outcome of a single manual override."""
    message: str
    group: Optional[MatchingGroup] = None
    group_deleted: bool = False
    source_group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "group": self.group.to_dict() if self.group else None,
            "group_deleted": self.group_deleted,
            "source_group_id": self.source_group_id,
        }


@dataclass
class BulkAssignResult:
    """Per-participant outcome of a bulk assignment."""
    success: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.success)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Bulk assignment completed",
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "results": {"success": list(self.success), "failed": list(self.failed)},
        }


class ManualOverrideService:
    """
    Administrator-driven group mutations.

    Attributes:
        store: Matching store
        selector: Eligibility checks and live profile lookups
        calculator: Pair scoring against existing members
        aggregator: Group statistics refresh
        max_group_size: Capacity of a group
    """

    def __init__(
        self,
        store: MatchingStore,
        selector: EligibilitySelector,
        calculator: Optional[ScoreCalculator] = None,
        aggregator: Optional[StatisticsAggregator] = None,
        config: Optional[MatchingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        config = config or MatchingConfig()
        self.store = store
        self.selector = selector
        self.calculator = calculator or ScoreCalculator(config)
        self.clock = clock or datetime.now
        self.aggregator = aggregator or StatisticsAggregator(store, self.clock)
        self.max_group_size = config.max_group_size

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        try:
            with self.store.transaction():
                yield
        except MatchingError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed and was rolled back: {e}")
            raise InternalError(f"{operation} failed: {e}") from e

    def _score_against(
        self,
        participant_id: str,
        traits: TraitSnapshot,
        members: Sequence[GroupMember],
    ) -> Dict[str, float]:
        """Score a participant against every member: member id -> score."""
        return {
            m.participant_id: self.calculator.score_traits(
                participant_id, traits, m.participant_id, m.snapshot
            ).score
            for m in members
        }

    def _check_capacity(self, group: MatchingGroup, named: bool = True) -> None:
        if len(group.members) >= self.max_group_size:
            label = f"Group {group.group_number}" if named else "Group"
            raise InvalidOperationError(
                f"{label} is already full (max {self.max_group_size} members)"
            )

    def _refresh_or_delete(self, group: MatchingGroup, modified_by: str, now: datetime) -> bool:
        """Save the group with fresh statistics, or delete it if empty."""
        if not group.members:
            self.store.delete_group(group.group_id)
            logger.info(f"Group {group.group_number} is empty and was deleted")
            return True
        self.aggregator.apply_group_statistics(group, modified_by, now)
        self.store.save_group(group)
        return False

    # =========================================================================
    # Operations
    # =========================================================================

    def assign(
        self,
        event_id: str,
        participant_id: str,
        group_number: int,
        assigned_by: str,
        note: Optional[str] = None,
        registration_id: Optional[str] = None,
    ) -> OverrideResult:
        """
        Place an unassigned, eligible participant into a group.

        The group is created on first reference.

        Args:
            event_id: Event identifier
            participant_id: Participant to place
            group_number: Target group number (created if missing)
            assigned_by: Administrator id
            note: Optional assignment note
            registration_id: Expected paid registration (optional)

        Raises:
            NotFoundError: No paid registration
            InvalidOperationError: No profile, or target group full
            ConflictError: Participant already in a group of the event
        """
        with self._unit_of_work("Assignment"):
            profile = self.selector.require_eligible(event_id, participant_id, registration_id)

            existing = self.store.find_group_of_participant(event_id, participant_id)
            if existing is not None:
                raise ConflictError(
                    f"Participant is already assigned to Group {existing.group_number}"
                )

            now = self.clock()
            group = self.store.find_group_by_number(event_id, group_number)
            if group is None:
                if group_number < 1:
                    raise InvalidOperationError("Group number must be at least 1")
                group = MatchingGroup(
                    group_id=new_id(),
                    event_id=event_id,
                    group_number=group_number,
                    status=MatchingStatus.MATCHED,
                    has_manual_changes=True,
                    last_modified_by=assigned_by,
                    last_modified_at=now,
                    created_at=now,
                )
                logger.info(f"Event {event_id}: created Group {group_number} on assignment")

            self._check_capacity(group)

            snapshot = profile.to_snapshot()
            scores = self._score_against(participant_id, snapshot, group.members)
            for member in group.members:
                member.match_scores[participant_id] = scores[member.participant_id]

            group.members.append(GroupMember(
                member_id=new_id(),
                group_id=group.group_id,
                participant_id=participant_id,
                registration_id=profile.registration_id,
                snapshot=snapshot,
                match_scores=scores,
                is_manually_assigned=True,
                assigned_by=assigned_by,
                assigned_at=now,
                assignment_note=note,
            ))
            self.aggregator.apply_group_statistics(group, assigned_by, now)
            self.store.save_group(group)

        logger.info(f"Event {event_id}: assigned {participant_id} to Group {group.group_number}")
        return OverrideResult("Participant successfully assigned to group", group=group)

    def move(
        self,
        event_id: str,
        participant_id: str,
        from_group_id: str,
        to_group_id: str,
        moved_by: str,
        note: Optional[str] = None,
    ) -> OverrideResult:
        """
        Move a participant between two groups of the same event.

        The participant is re-scored against the destination members and
        stripped from the source members' score maps. A source group left
        empty is deleted.

        Raises:
            NotFoundError: A group is missing, or the participant is not in the source
            InvalidOperationError: Cross-event move, same group, or destination full
        """
        with self._unit_of_work("Move"):
            source = self.store.get_group(from_group_id)
            target = self.store.get_group(to_group_id)
            if source is None or target is None:
                raise NotFoundError("One or both groups not found")
            if source.event_id != event_id or target.event_id != event_id:
                raise InvalidOperationError("Groups must belong to the same event")
            if source.group_id == target.group_id:
                raise InvalidOperationError("Source and destination groups are the same")

            self._check_capacity(target, named=False)

            member = source.find_member(participant_id)
            if member is None:
                raise NotFoundError("Participant not found in source group")

            profile = self.selector.find_profile(participant_id, member.registration_id)
            traits = profile.to_snapshot() if profile else member.snapshot

            now = self.clock()
            scores = self._score_against(participant_id, traits, target.members)
            for target_member in target.members:
                target_member.match_scores[participant_id] = scores[target_member.participant_id]

            source.members.remove(member)
            for source_member in source.members:
                source_member.match_scores.pop(participant_id, None)

            member.group_id = target.group_id
            member.snapshot = traits
            member.match_scores = scores
            member.is_manually_assigned = True
            member.assigned_by = moved_by
            member.assigned_at = now
            member.previous_group_id = source.group_id
            member.assignment_note = note
            target.members.append(member)

            self.aggregator.apply_group_statistics(target, moved_by, now)
            self.store.save_group(target)
            source_deleted = self._refresh_or_delete(source, moved_by, now)

        logger.info(
            f"Event {event_id}: moved {participant_id} from Group {source.group_number} "
            f"to Group {target.group_number}"
        )
        return OverrideResult(
            "Participant successfully moved between groups",
            group=target,
            group_deleted=source_deleted,
            source_group_id=source.group_id,
        )

    def remove(
        self,
        event_id: str,
        participant_id: str,
        group_id: str,
        removed_by: str,
        reason: Optional[str] = None,
    ) -> OverrideResult:
        """
        Take a participant out of a group, deleting the group if it empties.

        Raises:
            NotFoundError: The participant is not in that group of the event
        """
        with self._unit_of_work("Removal"):
            group = self.store.get_group(group_id)
            member = group.find_member(participant_id) if group and group.event_id == event_id else None
            if member is None:
                raise NotFoundError("Participant not found in group")

            group.members.remove(member)
            for other in group.members:
                other.match_scores.pop(participant_id, None)

            deleted = self._refresh_or_delete(group, removed_by, self.clock())

        logger.info(
            f"Event {event_id}: removed {participant_id} from Group {group.group_number}"
            + (f" ({reason})" if reason else "")
        )
        if deleted:
            return OverrideResult("Participant removed and empty group deleted", group_deleted=True)
        return OverrideResult("Participant successfully removed from group", group=group)

    def create_manual_group(
        self,
        event_id: str,
        group_number: int,
        created_by: str,
        table_number: Optional[str] = None,
        venue_name: Optional[str] = None,
    ) -> OverrideResult:
        """
        Create an empty group flagged as manually created.

        Raises:
            InvalidOperationError: Group number below 1
            ConflictError: Group number already used in the event
        """
        if group_number < 1:
            raise InvalidOperationError("Group number must be at least 1")

        with self._unit_of_work("Group creation"):
            if self.store.find_group_by_number(event_id, group_number) is not None:
                raise ConflictError(f"Group {group_number} already exists")

            now = self.clock()
            group = MatchingGroup(
                group_id=new_id(),
                event_id=event_id,
                group_number=group_number,
                status=MatchingStatus.MATCHED,
                table_number=table_number,
                venue_name=venue_name,
                has_manual_changes=True,
                last_modified_by=created_by,
                last_modified_at=now,
                created_at=now,
            )
            self.store.save_group(group)

        logger.info(f"Event {event_id}: created manual Group {group_number}")
        return OverrideResult("Manual group created successfully", group=group)

    def bulk_assign(
        self,
        event_id: str,
        participant_ids: Sequence[str],
        target_group_id: str,
        assigned_by: str,
        note: Optional[str] = None,
    ) -> BulkAssignResult:
        """
        Assign several participants to one existing group.

        Each participant is assigned in its own transaction; a failure is
        recorded with its reason and the batch continues.

        Returns:
            BulkAssignResult with the successful ids and per-item failures
        """
        results = BulkAssignResult()

        for participant_id in participant_ids:
            registration = self.selector.source.get_registration(event_id, participant_id)
            if registration is None:
                results.failed.append({"participant_id": participant_id, "reason": "No paid registration found"})
                continue

            group = self.store.get_group(target_group_id)
            if group is None or group.event_id != event_id:
                results.failed.append({"participant_id": participant_id, "reason": "Target group not found"})
                continue

            try:
                self.assign(
                    event_id,
                    participant_id,
                    group.group_number,
                    assigned_by,
                    note=note,
                    registration_id=registration.registration_id,
                )
            except MatchingError as e:
                logger.warning(f"Bulk assignment of {participant_id} failed: {e.message}")
                results.failed.append({"participant_id": participant_id, "reason": e.message})
                continue
            results.success.append(participant_id)

        logger.info(
            f"Event {event_id}: bulk assignment done, "
            f"{results.success_count} succeeded, {results.failed_count} failed"
        )
        return results
