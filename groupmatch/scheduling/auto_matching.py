"""
Scheduled auto-matching.

An external scheduler (cron, APScheduler, a k8s CronJob...) calls
``AutoMatchingSweep.run_sweep()`` periodically, typically hourly. Each
sweep matches every published, active event that starts 24-25 hours from
now and has not been auto-matched yet, then notifies participants and the
administrator.

Overlapping sweeps in the same process are skipped, not queued. The
persisted auto-matched flag keeps repeated sweeps from re-matching an
event, and is re-checked right before each event is processed.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional, Tuple, Union

from ..configs import MatchingConfig
from ..evaluation import MatchingResult
from ..orchestrator import MatchingOrchestrator
from ..profiles import EventRecord, EventStatus, ParticipantProfile

logger = logging.getLogger(__name__)

SYSTEM_TRIGGER = "system"
MANUAL_TRIGGER = "manual"


def _comparable(start: datetime, now: datetime) -> Tuple[datetime, datetime]:
    """Read a naive side as local time when the other side is timezone-aware."""
    if start.tzinfo is None and now.tzinfo is not None:
        return start.astimezone(), now
    if start.tzinfo is not None and now.tzinfo is None:
        return start, now.astimezone()
    return start, now


class Notifier(ABC):
    """Outbound notification channel (email, in-app, ...)."""

    @abstractmethod
    def notify_participant(self, event: EventRecord, participant: ParticipantProfile, group_number: int) -> None:
        """Tell a participant which group they were matched into."""

    @abstractmethod
    def notify_admin(self, event: EventRecord, result: MatchingResult) -> None:
        """Send the matching summary of an event to the administrator."""

    @abstractmethod
    def notify_failure(self, event: EventRecord, error: Exception) -> None:
        """Report a failed auto-matching of an event to the administrator."""


class LoggingNotifier(Notifier):
    """Notifier that only writes log lines."""

    def notify_participant(self, event: EventRecord, participant: ParticipantProfile, group_number: int) -> None:
        logger.info(f"[{event.title}] {participant.participant_id} matched into Group {group_number}")

    def notify_admin(self, event: EventRecord, result: MatchingResult) -> None:
        stats = result.statistics
        logger.info(
            f"[{event.title}] matching complete: {stats.total_groups} groups, "
            f"{stats.matched_count}/{stats.total_participants} matched"
        )

    def notify_failure(self, event: EventRecord, error: Exception) -> None:
        logger.error(f"[{event.title}] auto-matching failed: {error}")


@dataclass
class SweepSummary:
    """Counters of one sweep."""
    events_found: int = 0
    events_processed: int = 0
    events_failed: int = 0
    events_skipped: int = 0
    groups_formed: int = 0
    participants_matched: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_found": self.events_found,
            "events_processed": self.events_processed,
            "events_failed": self.events_failed,
            "events_skipped": self.events_skipped,
            "groups_formed": self.groups_formed,
            "participants_matched": self.participants_matched,
        }


class AutoMatchingSweep:
    """
    Matches events shortly before they start.

    Attributes:
        orchestrator: Matching engine
        notifier: Outbound notification channel
        window_start: Offset from now where the matching window opens
        window_end: Offset from now where the matching window closes
    """

    def __init__(
        self,
        orchestrator: MatchingOrchestrator,
        notifier: Optional[Notifier] = None,
        config: Optional[MatchingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        config = config or orchestrator.config
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock or datetime.now
        self.window_start = timedelta(hours=config.window_start_hours)
        self.window_end = timedelta(hours=config.window_end_hours)
        self._busy = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._busy.locked()

    def find_due_events(self, now: datetime) -> List[EventRecord]:
        """Published, active, not yet auto-matched events starting in the window."""
        due = []
        for event in self.orchestrator.source.list_events():
            start, reference = _comparable(event.start_time, now)
            if not (reference + self.window_start <= start < reference + self.window_end):
                continue
            if event.status != EventStatus.PUBLISHED or not event.is_active:
                continue
            if self.store.is_auto_matched(event.event_id):
                continue
            due.append(event)
        return due

    def run_sweep(self, now: Optional[datetime] = None) -> Optional[SweepSummary]:
        """
        Match every due event.

        Args:
            now: Reference time (defaults to the clock)

        Returns:
            SweepSummary, or None when another sweep is already running
        """
        if not self._busy.acquire(blocking=False):
            logger.warning("Auto-matching job is already running. Skipping...")
            return None

        try:
            return self._sweep(now or self.clock())
        finally:
            self._busy.release()

    def _sweep(self, now: datetime) -> SweepSummary:
        logger.info(
            f"Starting auto-matching job: events between "
            f"{(now + self.window_start).isoformat()} and {(now + self.window_end).isoformat()}"
        )
        summary = SweepSummary()

        events = self.find_due_events(now)
        summary.events_found = len(events)
        if not events:
            logger.info("No events found in the matching window")
            return summary

        logger.info(f"Found {len(events)} events that need matching")
        for event in events:
            logger.info(f"Processing event: {event.title} (ID: {event.event_id})")

            if self.store.is_auto_matched(event.event_id):
                logger.info(f"Event {event.title} has already been matched. Skipping...")
                summary.events_skipped += 1
                continue

            try:
                result = self._match_event(event, SYSTEM_TRIGGER)
            except Exception as e:
                summary.events_failed += 1
                logger.error(f"Failed to match event {event.title}: {e}")
                self._deliver(self.notifier.notify_failure, event, e)
                continue

            summary.events_processed += 1
            summary.groups_formed += result.statistics.total_groups
            summary.participants_matched += result.statistics.matched_count

        logger.info(
            f"Auto-matching job completed: {summary.events_processed} processed, "
            f"{summary.events_failed} failed, {summary.groups_formed} groups formed, "
            f"{summary.participants_matched} participants matched"
        )
        return summary

    def _match_event(self, event: EventRecord, triggered_by: str) -> MatchingResult:
        result = self.orchestrator.run_matching(event.event_id, triggered_by)
        self.store.set_auto_matched(event.event_id, self.clock())
        logger.info(f"Matched {result.statistics.total_groups} groups for {event.title}")

        if result.groups:
            self._notify_participants(event, result)
        self._deliver(self.notifier.notify_admin, event, result)
        return result

    def _notify_participants(self, event: EventRecord, result: MatchingResult) -> None:
        notified = set()
        for number, group in enumerate(result.groups, start=1):
            for member in group.members:
                if member.participant_id in notified:
                    logger.warning(f"Participant {member.participant_id} already notified. Skipping...")
                    continue
                if self._deliver(self.notifier.notify_participant, event, member, number):
                    notified.add(member.participant_id)

    @staticmethod
    def _deliver(send: Callable[..., None], *args) -> bool:
        # Delivery problems never abort matching
        try:
            send(*args)
        except Exception as e:
            logger.error(f"Notification delivery failed: {e}")
            return False
        return True

    def manual_trigger(self, event_id: Optional[str] = None) -> Union[MatchingResult, SweepSummary, None]:
        """
        Re-run auto-matching on demand.

        Args:
            event_id: Event to (re-)match; runs a full sweep when omitted

        Returns:
            The event's MatchingResult, or the SweepSummary of the sweep
            (None if a sweep was already running)

        Raises:
            NotFoundError: Unknown event id
        """
        logger.info("Manual trigger initiated...")
        if event_id is None:
            return self.run_sweep()

        event = self.orchestrator.require_event(event_id)
        self.store.set_auto_matched(event_id, None)
        return self._match_event(event, MANUAL_TRIGGER)

    def reset_auto_matching_flag(self, event_id: str) -> EventRecord:
        """Clear the auto-matched flag so the next sweep picks the event up again."""
        event = self.orchestrator.require_event(event_id)
        self.store.set_auto_matched(event_id, None)
        logger.info(f"Reset auto-matching flag for event: {event.title}")
        return event
