"""
Summary statistics for matching results and persisted groups.

Two entry points:
- ``summarize`` derives run-level metrics from freshly formed groups
- ``recompute`` re-derives one persisted group's size/average/minimum from
  its members' stored score maps after a manual edit

Run-level average score is taken over the flattened list of every pair
score inside every group, not over the group averages.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional, Sequence

import pandas as pd

from ..formation import FormationResult, GroupCandidate, ThresholdBreakdown
from ..profiles import ParticipantProfile
from ..scoring import round_score
from ..storage.models import MatchingGroup, MatchingStatus
from ..storage.store import MatchingStore

logger = logging.getLogger(__name__)

GROUP_FRAME_COLUMNS = [
    "group_number", "participant_id", "registration_id", "name",
    "group_size", "average_match_score", "min_match_score",
    "threshold_used", "seed_attempt",
]


def derive_status(total_groups: int, unmatched_count: int) -> MatchingStatus:
    """Outcome status of a run: no group, some left over, or everyone placed."""
    if total_groups == 0:
        return MatchingStatus.NO_MATCH
    if unmatched_count > 0:
        return MatchingStatus.PARTIALLY_MATCHED
    return MatchingStatus.MATCHED


@dataclass
class MatchingStatistics:
    """Run-level metrics of a matching result."""
    total_participants: int
    matched_count: int
    unmatched_count: int
    total_groups: int
    average_group_size: float
    average_match_score: float
    highest_threshold_used: float
    lowest_threshold_used: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_participants": self.total_participants,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "total_groups": self.total_groups,
            "average_group_size": self.average_group_size,
            "average_match_score": self.average_match_score,
            "highest_threshold_used": self.highest_threshold_used,
            "lowest_threshold_used": self.lowest_threshold_used,
        }


@dataclass
class MatchingResult:
    """
    Complete result of one matching computation.

    Returned by both run and preview; only a run persists it.
    """
    event_id: str
    status: MatchingStatus
    groups: List[GroupCandidate]
    unmatched: List[ParticipantProfile]
    statistics: MatchingStatistics
    threshold_breakdown: List[ThresholdBreakdown] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    execution_time: Optional[float] = None

    @property
    def matched_participant_ids(self) -> List[str]:
        return [pid for group in self.groups for pid in group.member_ids]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "status": self.status.value,
            "groups": [g.to_dict() for g in self.groups],
            "unmatched_participants": [p.to_dict() for p in self.unmatched],
            "statistics": self.statistics.to_dict(),
            "threshold_breakdown": [t.to_dict() for t in self.threshold_breakdown],
            "warnings": list(self.warnings),
            "execution_time": self.execution_time,
        }

    def groups_frame(self) -> pd.DataFrame:
        """
        Flatten the groups into a DataFrame with one row per member.

        Returns:
            DataFrame with GROUP_FRAME_COLUMNS, numbered in formation order
        """
        rows = []
        for number, group in enumerate(self.groups, start=1):
            for member in group.members:
                rows.append({
                    "group_number": number,
                    "participant_id": member.participant_id,
                    "registration_id": member.registration_id,
                    "name": member.name,
                    "group_size": group.size,
                    "average_match_score": group.average_match_score,
                    "min_match_score": group.min_match_score,
                    "threshold_used": group.threshold_used,
                    "seed_attempt": group.seed_attempt,
                })
        return pd.DataFrame(rows, columns=GROUP_FRAME_COLUMNS)


class StatisticsAggregator:
    """
    Derives summary metrics from formed or persisted groups.

    Attributes:
        store: Matching store, needed only by ``recompute``
        clock: Returns the current time for audit stamps
    """

    def __init__(
        self,
        store: Optional[MatchingStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.clock = clock or datetime.now

    # =========================================================================
    # Run-level statistics
    # =========================================================================

    def summarize(
        self,
        groups: Sequence[GroupCandidate],
        total_participants: int,
        unmatched_count: int,
    ) -> MatchingStatistics:
        """
        Compute run-level metrics.

        Args:
            groups: Formed groups
            total_participants: Size of the eligible pool
            unmatched_count: Participants left without a group

        Returns:
            MatchingStatistics (all zeros when no group formed)
        """
        all_scores = [pair.score for group in groups for pair in group.match_scores]
        thresholds = [group.threshold_used for group in groups]
        matched = total_participants - unmatched_count

        return MatchingStatistics(
            total_participants=total_participants,
            matched_count=matched,
            unmatched_count=unmatched_count,
            total_groups=len(groups),
            average_group_size=round_score(matched / len(groups)) if groups else 0.0,
            average_match_score=round_score(sum(all_scores) / len(all_scores)) if all_scores else 0.0,
            highest_threshold_used=max(thresholds) if thresholds else 0,
            lowest_threshold_used=min(thresholds) if thresholds else 0,
        )

    def build_result(
        self,
        event_id: str,
        formation: FormationResult,
        total_participants: int,
    ) -> MatchingResult:
        """Wrap a formation result with its statistics and status."""
        statistics = self.summarize(formation.groups, total_participants, len(formation.unmatched))
        return MatchingResult(
            event_id=event_id,
            status=derive_status(statistics.total_groups, statistics.unmatched_count),
            groups=list(formation.groups),
            unmatched=list(formation.unmatched),
            statistics=statistics,
            threshold_breakdown=list(formation.threshold_breakdown),
            warnings=list(formation.warnings),
        )

    def create_empty_result(
        self,
        event_id: str,
        participants: Sequence[ParticipantProfile],
        warning: str,
    ) -> MatchingResult:
        """A successful result with no groups, everyone unmatched."""
        statistics = self.summarize([], len(participants), len(participants))
        return MatchingResult(
            event_id=event_id,
            status=MatchingStatus.NO_MATCH,
            groups=[],
            unmatched=list(participants),
            statistics=statistics,
            warnings=[warning],
        )

    # =========================================================================
    # Group-level statistics
    # =========================================================================

    def apply_group_statistics(
        self,
        group: MatchingGroup,
        modified_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MatchingGroup:
        """
        Re-derive size, average and minimum from the members' score maps
        and stamp the modification audit fields. Empty groups are left
        untouched since they are about to be deleted.
        """
        if not group.members:
            return group

        scores = [score for member in group.members for score in member.match_scores.values()]
        group.group_size = len(group.members)
        group.average_match_score = round_score(sum(scores) / len(scores)) if scores else 0.0
        group.min_match_score = round_score(min(scores)) if scores else 0.0
        group.has_manual_changes = True
        group.last_modified_by = modified_by
        group.last_modified_at = now or self.clock()
        return group

    def recompute(self, group_id: str, modified_by: Optional[str] = None) -> Optional[MatchingGroup]:
        """
        Reload one persisted group, refresh its statistics and save it.

        Returns:
            The updated group, or None if it no longer exists
        """
        if self.store is None:
            raise RuntimeError("recompute requires a matching store")

        group = self.store.get_group(group_id)
        if group is None:
            return None
        if not group.members:
            return group

        self.apply_group_statistics(group, modified_by)
        self.store.save_group(group)
        logger.debug(
            f"Group {group.group_number}: size {group.group_size}, "
            f"avg {group.average_match_score}, min {group.min_match_score}"
        )
        return group
