"""
Persisted records of the matching engine.

MatchingGroup and GroupMember are replaced wholesale by every automatic
run and mutated individually by manual overrides. MatchingAttempt is
append-only history: one record per automatic run, never rewritten.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from ..profiles import TraitSnapshot


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class MatchingStatus(Enum):
    """Lifecycle status of groups and outcome status of attempts."""
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    PARTIALLY_MATCHED = "PARTIALLY_MATCHED"
    NO_MATCH = "NO_MATCH"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


@dataclass
class GroupMember:
    """
    A participant's membership in a group.

    Attributes:
        member_id: Record identifier
        group_id: Owning group
        participant_id: The participant
        registration_id: Paid registration the membership is based on
        snapshot: Trait scores frozen at assignment time
        match_scores: Groupmate id -> pair score, kept symmetric with the
            groupmates' own maps
        is_manually_assigned: Placed by an administrator
        assigned_by: Administrator who placed the participant
        assigned_at: When the participant was placed
        assignment_note: Free-text note
        previous_group_id: Source group of a move
    """
    member_id: str
    group_id: str
    participant_id: str
    registration_id: str
    snapshot: TraitSnapshot
    match_scores: Dict[str, float] = field(default_factory=dict)
    is_manually_assigned: bool = False
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    assignment_note: Optional[str] = None
    previous_group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "group_id": self.group_id,
            "participant_id": self.participant_id,
            "registration_id": self.registration_id,
            "snapshot": self.snapshot.to_dict(),
            "match_scores": dict(self.match_scores),
            "is_manually_assigned": self.is_manually_assigned,
            "assigned_by": self.assigned_by,
            "assigned_at": _iso(self.assigned_at),
            "assignment_note": self.assignment_note,
            "previous_group_id": self.previous_group_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GroupMember":
        return cls(
            member_id=d["member_id"],
            group_id=d["group_id"],
            participant_id=d["participant_id"],
            registration_id=d["registration_id"],
            snapshot=TraitSnapshot.from_dict(d["snapshot"]),
            match_scores={k: float(v) for k, v in d.get("match_scores", {}).items()},
            is_manually_assigned=d.get("is_manually_assigned", False),
            assigned_by=d.get("assigned_by"),
            assigned_at=_parse_dt(d.get("assigned_at")),
            assignment_note=d.get("assignment_note"),
            previous_group_id=d.get("previous_group_id"),
        )


@dataclass
class MatchingGroup:
    """
    A persisted group for one event.

    ``group_number`` is 1-based and unique per event. The statistics
    fields are derived from the members' score maps and must be
    recomputed after every membership change.
    """
    group_id: str
    event_id: str
    group_number: int
    status: MatchingStatus = MatchingStatus.MATCHED
    group_size: int = 0
    average_match_score: float = 0.0
    min_match_score: float = 0.0
    threshold_used: float = 0.0
    table_number: Optional[str] = None
    venue_name: Optional[str] = None
    has_manual_changes: bool = False
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    members: List[GroupMember] = field(default_factory=list)

    @property
    def member_ids(self) -> List[str]:
        return [m.participant_id for m in self.members]

    def find_member(self, participant_id: str) -> Optional[GroupMember]:
        for member in self.members:
            if member.participant_id == participant_id:
                return member
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "event_id": self.event_id,
            "group_number": self.group_number,
            "status": self.status.value,
            "group_size": self.group_size,
            "average_match_score": self.average_match_score,
            "min_match_score": self.min_match_score,
            "threshold_used": self.threshold_used,
            "table_number": self.table_number,
            "venue_name": self.venue_name,
            "has_manual_changes": self.has_manual_changes,
            "last_modified_by": self.last_modified_by,
            "last_modified_at": _iso(self.last_modified_at),
            "created_at": _iso(self.created_at),
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MatchingGroup":
        return cls(
            group_id=d["group_id"],
            event_id=d["event_id"],
            group_number=int(d["group_number"]),
            status=MatchingStatus(d.get("status", MatchingStatus.MATCHED.value)),
            group_size=int(d.get("group_size", 0)),
            average_match_score=float(d.get("average_match_score", 0.0)),
            min_match_score=float(d.get("min_match_score", 0.0)),
            threshold_used=float(d.get("threshold_used", 0.0)),
            table_number=d.get("table_number"),
            venue_name=d.get("venue_name"),
            has_manual_changes=d.get("has_manual_changes", False),
            last_modified_by=d.get("last_modified_by"),
            last_modified_at=_parse_dt(d.get("last_modified_at")),
            created_at=_parse_dt(d.get("created_at")),
            members=[GroupMember.from_dict(m) for m in d.get("members", [])],
        )


@dataclass(frozen=True)
class MatchingAttempt:
    """One immutable history record per automatic matching run."""
    attempt_id: str
    event_id: str
    attempt_number: int
    status: MatchingStatus
    total_participants: int
    matched_count: int
    unmatched_count: int
    groups_formed: int
    average_match_score: Optional[float]
    highest_threshold: float
    lowest_threshold: float
    matching_result: Dict[str, Any]
    unmatched_participants: List[Dict[str, Any]]
    executed_by: Optional[str]
    execution_time: float
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "event_id": self.event_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "total_participants": self.total_participants,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "groups_formed": self.groups_formed,
            "average_match_score": self.average_match_score,
            "highest_threshold": self.highest_threshold,
            "lowest_threshold": self.lowest_threshold,
            "matching_result": self.matching_result,
            "unmatched_participants": self.unmatched_participants,
            "executed_by": self.executed_by,
            "execution_time": self.execution_time,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MatchingAttempt":
        return cls(
            attempt_id=d["attempt_id"],
            event_id=d["event_id"],
            attempt_number=int(d["attempt_number"]),
            status=MatchingStatus(d["status"]),
            total_participants=int(d["total_participants"]),
            matched_count=int(d["matched_count"]),
            unmatched_count=int(d["unmatched_count"]),
            groups_formed=int(d["groups_formed"]),
            average_match_score=d.get("average_match_score"),
            highest_threshold=float(d["highest_threshold"]),
            lowest_threshold=float(d["lowest_threshold"]),
            matching_result=d.get("matching_result", {}),
            unmatched_participants=d.get("unmatched_participants", []),
            executed_by=d.get("executed_by"),
            execution_time=float(d["execution_time"]),
            created_at=datetime.fromisoformat(d["created_at"]),
        )
