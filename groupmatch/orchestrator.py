"""
Matching orchestration.

This module composes the engine into its public operations:

    run_matching(event_id)
        -> eligible participants -> pair scores -> group formation
        -> statistics -> attempt log -> replace persisted groups
    preview_matching(event_id)
        -> same computation, nothing written

plus the read accessors and the manual overrides. All writes for one
event go through a per-event lock, so an automatic re-run never
interleaves with a manual edit of the same event.
"""

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Any, Iterator, List, Optional, Sequence

from .configs import MatchingConfig
from .eligibility import EligibilitySelector, RegistrationSource, UnassignedParticipants
from .errors import NotFoundError
from .evaluation import MatchingResult, StatisticsAggregator
from .formation import GroupFormationAlgorithm
from .overrides import BulkAssignResult, ManualOverrideService, OverrideResult
from .profiles import EventRecord
from .scoring import ScoreCalculator
from .storage import MatchingAttempt, MatchingStore
from .storage.persistence import ParticipantGroupView, ResultPersistence

logger = logging.getLogger(__name__)


class EventLockRegistry:
    """One re-entrant lock per event id, created on first use."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, event_id: str) -> threading.RLock:
        with self._guard:
            if event_id not in self._locks:
                self._locks[event_id] = threading.RLock()
            return self._locks[event_id]

    @contextmanager
    def hold(self, event_id: str) -> Iterator[None]:
        with self.get(event_id):
            yield


class MatchingOrchestrator:
    """
    Entry point of the matching engine.

    Attributes:
        source: Registration/assessment store (read-only)
        store: Matching store
        config: Matching configuration
        selector: Eligibility selection
        calculator: Pair scoring
        algorithm: Group formation
        aggregator: Statistics
        persistence: Result and attempt persistence
        overrides: Manual override operations
        locks: Per-event write locks
    """

    def __init__(
        self,
        source: RegistrationSource,
        store: MatchingStore,
        config: Optional[MatchingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or MatchingConfig()
        self.source = source
        self.store = store
        clock = clock or datetime.now

        self.selector = EligibilitySelector(source, store)
        self.calculator = ScoreCalculator(self.config)
        self.algorithm = GroupFormationAlgorithm(self.config)
        self.aggregator = StatisticsAggregator(store, clock)
        self.persistence = ResultPersistence(store, clock)
        self.overrides = ManualOverrideService(
            store,
            self.selector,
            calculator=self.calculator,
            aggregator=self.aggregator,
            config=self.config,
            clock=clock,
        )
        self.locks = EventLockRegistry()

    def require_event(self, event_id: str) -> EventRecord:
        """
        Raises:
            NotFoundError: Unknown event id
        """
        event = self.source.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    # =========================================================================
    # Automatic matching
    # =========================================================================

    def _compute(self, event_id: str) -> MatchingResult:
        participants = self.selector.get_eligible(event_id)

        if len(participants) < self.algorithm.min_group_size:
            warning = self.algorithm.not_enough_warning()
            logger.warning(f"Event {event_id}: {warning}")
            return self.aggregator.create_empty_result(event_id, participants, warning)

        score_index = self.calculator.build_index(participants)
        formation = self.algorithm.run(participants, score_index)
        return self.aggregator.build_result(event_id, formation, len(participants))

    def preview_matching(self, event_id: str) -> MatchingResult:
        """
        Compute a matching result without writing anything.

        Raises:
            NotFoundError: Unknown event id
        """
        self.require_event(event_id)
        start = time.perf_counter()
        result = self._compute(event_id)
        result.execution_time = round(time.perf_counter() - start, 3)
        logger.info(
            f"Event {event_id}: preview formed {result.statistics.total_groups} groups "
            f"in {result.execution_time}s"
        )
        return result

    def run_matching(self, event_id: str, triggered_by: Optional[str] = None) -> MatchingResult:
        """
        Run matching for an event, log the attempt and replace its groups.

        A pool too small to form any group still yields a (successful,
        empty) result and a logged attempt.

        Args:
            event_id: Event identifier
            triggered_by: Administrator id, "system" or "manual"

        Returns:
            The computed MatchingResult

        Raises:
            NotFoundError: Unknown event id
        """
        self.require_event(event_id)
        logger.info(f"Event {event_id}: matching started (triggered by {triggered_by})")

        with self.locks.hold(event_id):
            start = time.perf_counter()
            result = self._compute(event_id)
            elapsed = time.perf_counter() - start
            result.execution_time = round(elapsed, 3)

            # The attempt row and the groups commit together
            with self.store.transaction():
                self.persistence.record_attempt(event_id, result, triggered_by, elapsed)
                self.persistence.replace_results(event_id, result)

        stats = result.statistics
        logger.info(
            f"Event {event_id}: matching finished, {stats.total_groups} groups, "
            f"{stats.matched_count}/{stats.total_participants} matched in {result.execution_time}s"
        )
        return result

    # =========================================================================
    # Reads
    # =========================================================================

    def get_groups(self, event_id: str) -> List[Dict[str, Any]]:
        """Current groups of an event with each member's live profile."""
        return self.persistence.get_results(event_id, profile_lookup=self.selector.find_profile)

    def get_attempt_history(self, event_id: str) -> List[MatchingAttempt]:
        return self.persistence.get_attempt_history(event_id)

    def get_participant_group(self, event_id: str, participant_id: str) -> ParticipantGroupView:
        return self.persistence.get_participant_group(event_id, participant_id)

    def get_unassigned(self, event_id: str) -> UnassignedParticipants:
        return self.selector.get_unassigned(event_id)

    # =========================================================================
    # Manual overrides
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
        self.require_event(event_id)
        with self.locks.hold(event_id):
            return self.overrides.assign(
                event_id, participant_id, group_number, assigned_by,
                note=note, registration_id=registration_id,
            )

    def move(
        self,
        event_id: str,
        participant_id: str,
        from_group_id: str,
        to_group_id: str,
        moved_by: str,
        note: Optional[str] = None,
    ) -> OverrideResult:
        with self.locks.hold(event_id):
            return self.overrides.move(
                event_id, participant_id, from_group_id, to_group_id, moved_by, note=note
            )

    def remove(
        self,
        event_id: str,
        participant_id: str,
        group_id: str,
        removed_by: str,
        reason: Optional[str] = None,
    ) -> OverrideResult:
        with self.locks.hold(event_id):
            return self.overrides.remove(event_id, participant_id, group_id, removed_by, reason=reason)

    def create_manual_group(
        self,
        event_id: str,
        group_number: int,
        created_by: str,
        table_number: Optional[str] = None,
        venue_name: Optional[str] = None,
    ) -> OverrideResult:
        self.require_event(event_id)
        with self.locks.hold(event_id):
            return self.overrides.create_manual_group(
                event_id, group_number, created_by,
                table_number=table_number, venue_name=venue_name,
            )

    def bulk_assign(
        self,
        event_id: str,
        participant_ids: Sequence[str],
        target_group_id: str,
        assigned_by: str,
        note: Optional[str] = None,
    ) -> BulkAssignResult:
        self.require_event(event_id)
        with self.locks.hold(event_id):
            return self.overrides.bulk_assign(
                event_id, participant_ids, target_group_id, assigned_by, note=note
            )
