"""
Matching store contract and in-memory implementation.

The relational store itself is an external collaborator; the engine only
depends on the ``MatchingStore`` contract below. ``InMemoryMatchingStore``
implements it for tests, previews and the command line, and can be saved
to / loaded from a JSON snapshot.

Key Design Decisions:
- Records handed out are copies; callers mutate them and write them back
  with ``save_group``
- ``transaction()`` makes a multi-step mutation all-or-nothing: state is
  snapshotted on entry and restored if the block raises
- Attempts are append-only; an attempt number is never reused
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import ContextManager, Dict, Iterator, List, Optional, Set

from .models import MatchingAttempt, MatchingGroup

logger = logging.getLogger(__name__)


class MatchingStore(ABC):
    """Read/write contract of the matching tables."""

    @abstractmethod
    def get_group(self, group_id: str) -> Optional[MatchingGroup]:
        """Load one group with its members."""

    @abstractmethod
    def find_group_by_number(self, event_id: str, group_number: int) -> Optional[MatchingGroup]:
        """Load the group with the given number for an event."""

    @abstractmethod
    def list_groups(self, event_id: str) -> List[MatchingGroup]:
        """All groups of an event ordered by group number."""

    @abstractmethod
    def save_group(self, group: MatchingGroup) -> None:
        """Insert or replace a group and its members."""

    @abstractmethod
    def delete_group(self, group_id: str) -> None:
        """Delete a group and its members."""

    @abstractmethod
    def delete_groups_for_event(self, event_id: str) -> int:
        """Delete every group of an event, returning how many were deleted."""

    @abstractmethod
    def find_group_of_participant(self, event_id: str, participant_id: str) -> Optional[MatchingGroup]:
        """The event group the participant belongs to, if any."""

    @abstractmethod
    def get_assigned_participant_ids(self, event_id: str) -> Set[str]:
        """Ids of every participant present in any group of the event."""

    @abstractmethod
    def append_attempt(self, attempt: MatchingAttempt) -> None:
        """Append an attempt record; attempt numbers are unique per event."""

    @abstractmethod
    def list_attempts(self, event_id: str) -> List[MatchingAttempt]:
        """Attempt history ordered newest first."""

    @abstractmethod
    def last_attempt_number(self, event_id: str) -> int:
        """Highest attempt number recorded for the event (0 if none)."""

    @abstractmethod
    def get_auto_matched_at(self, event_id: str) -> Optional[datetime]:
        """When the scheduled sweep matched the event, None if it has not."""

    @abstractmethod
    def set_auto_matched(self, event_id: str, matched_at: Optional[datetime]) -> None:
        """Set (timestamp) or clear (None) the event's auto-matched flag."""

    @abstractmethod
    def transaction(self) -> ContextManager[None]:
        """Run the enclosed writes as one atomic unit."""

    def is_auto_matched(self, event_id: str) -> bool:
        return self.get_auto_matched_at(event_id) is not None


class InMemoryMatchingStore(MatchingStore):
    """
    Thread-safe in-memory matching store.

    Attributes:
        groups: group_id -> MatchingGroup
        attempts: event_id -> attempts in insertion order
        auto_matched: event_id -> auto-matching timestamp
    """

    def __init__(self):
        self.groups: Dict[str, MatchingGroup] = {}
        self.attempts: Dict[str, List[MatchingAttempt]] = {}
        self.auto_matched: Dict[str, datetime] = {}
        self._lock = threading.RLock()
        self._depth = 0

    # =========================================================================
    # Groups
    # =========================================================================

    def get_group(self, group_id: str) -> Optional[MatchingGroup]:
        with self._lock:
            group = self.groups.get(group_id)
            return copy.deepcopy(group) if group else None

    def find_group_by_number(self, event_id: str, group_number: int) -> Optional[MatchingGroup]:
        with self._lock:
            for group in self.groups.values():
                if group.event_id == event_id and group.group_number == group_number:
                    return copy.deepcopy(group)
            return None

    def list_groups(self, event_id: str) -> List[MatchingGroup]:
        with self._lock:
            groups = [g for g in self.groups.values() if g.event_id == event_id]
            return [copy.deepcopy(g) for g in sorted(groups, key=lambda g: g.group_number)]

    def save_group(self, group: MatchingGroup) -> None:
        with self._lock:
            for other in self.groups.values():
                if (
                    other.group_id != group.group_id
                    and other.event_id == group.event_id
                    and other.group_number == group.group_number
                ):
                    raise ValueError(
                        f"Group number {group.group_number} already used for event {group.event_id}"
                    )
            self.groups[group.group_id] = copy.deepcopy(group)

    def delete_group(self, group_id: str) -> None:
        with self._lock:
            self.groups.pop(group_id, None)

    def delete_groups_for_event(self, event_id: str) -> int:
        with self._lock:
            doomed = [gid for gid, g in self.groups.items() if g.event_id == event_id]
            for gid in doomed:
                del self.groups[gid]
            return len(doomed)

    def find_group_of_participant(self, event_id: str, participant_id: str) -> Optional[MatchingGroup]:
        with self._lock:
            for group in self.groups.values():
                if group.event_id == event_id and group.find_member(participant_id):
                    return copy.deepcopy(group)
            return None

    def get_assigned_participant_ids(self, event_id: str) -> Set[str]:
        with self._lock:
            return {
                m.participant_id
                for g in self.groups.values()
                if g.event_id == event_id
                for m in g.members
            }

    # =========================================================================
    # Attempts
    # =========================================================================

    def append_attempt(self, attempt: MatchingAttempt) -> None:
        with self._lock:
            history = self.attempts.setdefault(attempt.event_id, [])
            if any(a.attempt_number == attempt.attempt_number for a in history):
                raise ValueError(
                    f"Attempt {attempt.attempt_number} already recorded for event {attempt.event_id}"
                )
            history.append(copy.deepcopy(attempt))

    def list_attempts(self, event_id: str) -> List[MatchingAttempt]:
        with self._lock:
            history = self.attempts.get(event_id, [])
            ordered = sorted(history, key=lambda a: (a.created_at, a.attempt_number), reverse=True)
            return [copy.deepcopy(a) for a in ordered]

    def last_attempt_number(self, event_id: str) -> int:
        with self._lock:
            return max((a.attempt_number for a in self.attempts.get(event_id, [])), default=0)

    # =========================================================================
    # Auto-matching flag
    # =========================================================================

    def get_auto_matched_at(self, event_id: str) -> Optional[datetime]:
        with self._lock:
            return self.auto_matched.get(event_id)

    def set_auto_matched(self, event_id: str, matched_at: Optional[datetime]) -> None:
        with self._lock:
            if matched_at is None:
                self.auto_matched.pop(event_id, None)
            else:
                self.auto_matched[event_id] = matched_at

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Snapshot state on entry of the outermost transaction and restore
        it if the block raises. Nested transactions join the outer one.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                saved = (
                    copy.deepcopy(self.groups),
                    {k: list(v) for k, v in self.attempts.items()},
                    dict(self.auto_matched),
                )
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self.groups, self.attempts, self.auto_matched = saved
                    logger.warning("Transaction rolled back")
                raise
            finally:
                self._depth -= 1

    # =========================================================================
    # JSON snapshot
    # =========================================================================

    def to_dict(self) -> Dict:
        with self._lock:
            return {
                "groups": [g.to_dict() for g in self.groups.values()],
                "attempts": [a.to_dict() for history in self.attempts.values() for a in history],
                "auto_matched": {k: v.isoformat() for k, v in self.auto_matched.items()},
            }

    @classmethod
    def from_dict(cls, d: Dict) -> "InMemoryMatchingStore":
        store = cls()
        for gd in d.get("groups", []):
            group = MatchingGroup.from_dict(gd)
            store.groups[group.group_id] = group
        for ad in d.get("attempts", []):
            attempt = MatchingAttempt.from_dict(ad)
            store.attempts.setdefault(attempt.event_id, []).append(attempt)
        store.auto_matched = {k: datetime.fromisoformat(v) for k, v in d.get("auto_matched", {}).items()}
        return store

    def save(self, filepath: str) -> None:
        """Save the store to a JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved matching store to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "InMemoryMatchingStore":
        """Load a store from a JSON file."""
        with open(filepath, "r") as f:
            d = json.load(f)
        return cls.from_dict(d)
