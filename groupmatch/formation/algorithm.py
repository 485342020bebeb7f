"""
Group formation over a descending threshold schedule.

This module partitions the eligible participants of an event into groups
of min_group_size..max_group_size people. It is purely computational:
persistence happens downstream.

Algorithm:
    for threshold in [70, 65, 60, 55, 50, 0]:
        up to N seed attempts, each starting from a different ungrouped
        participant (stable input order):
            grow a group greedily from the seed, admitting candidates whose
            average score with the current members is >= threshold, best
            first, until the group is full; keep it if it reached the
            minimum size, then keep forming groups from the remaining pool
        keep the attempt that covered the most participants (first wins ties,
        stop early on full coverage) and commit its groups

Key Design Decisions:
- Admission uses the running group AVERAGE, not the worst pair, so a late
  candidate may score low against one early member
- Participants committed at one threshold are never reconsidered at a
  lower one
- The terminal 0 threshold lets any remaining cluster of min_group_size
  participants form a group
- No randomness: seeds follow the input order, so runs are reproducible
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence, Set

from ..configs import MatchingConfig
from ..profiles import ParticipantProfile
from ..scoring import PairScore, ScoreIndex, round_score

logger = logging.getLogger(__name__)

NOT_ENOUGH_PARTICIPANTS = "Not enough participants. Minimum {min_size} required."


@dataclass
class GroupCandidate:
    """
    An in-memory group produced by the formation algorithm.

    Attributes:
        members: Members in admission order (seed first)
        average_match_score: Mean of all internal pair scores
        min_match_score: Lowest internal pair score
        match_scores: All internal pair scores
        threshold_used: Threshold that admitted the group
        seed_attempt: Seed attempt that produced the group
    """
    members: List[ParticipantProfile]
    average_match_score: float
    min_match_score: float
    match_scores: List[PairScore]
    threshold_used: float
    seed_attempt: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> List[str]:
        return [m.participant_id for m in self.members]

    def scores_for(self, participant_id: str) -> Dict[str, float]:
        """Score map of one member: groupmate id -> pair score."""
        return {
            pair.other(participant_id): pair.score
            for pair in self.match_scores
            if pair.involves(participant_id)
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "members": [m.to_dict() for m in self.members],
            "size": self.size,
            "average_match_score": self.average_match_score,
            "min_match_score": self.min_match_score,
            "match_scores": [s.to_dict() for s in self.match_scores],
            "threshold_used": self.threshold_used,
            "seed_attempt": self.seed_attempt,
        }


@dataclass
class ThresholdBreakdown:
    """Groups and participants committed at one threshold."""
    threshold: float
    groups_formed: int
    participants_matched: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "groups_formed": self.groups_formed,
            "participants_matched": self.participants_matched,
        }


@dataclass
class FormationResult:
    """Output of a full multi-pass run."""
    groups: List[GroupCandidate] = field(default_factory=list)
    unmatched: List[ParticipantProfile] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    threshold_breakdown: List[ThresholdBreakdown] = field(default_factory=list)


class GroupFormationAlgorithm:
    """
    Multi-pass, multi-seed greedy group formation.

    Attributes:
        thresholds: Descending threshold schedule
        max_seed_attempts: Seed attempts per threshold
        min_group_size: Smallest acceptable group
        max_group_size: Largest acceptable group
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        config = config or MatchingConfig()
        self.thresholds = list(config.thresholds)
        self.max_seed_attempts = config.max_seed_attempts
        self.min_group_size = config.min_group_size
        self.max_group_size = config.max_group_size

    def not_enough_warning(self) -> str:
        return NOT_ENOUGH_PARTICIPANTS.format(min_size=self.min_group_size)

    def run(
        self,
        participants: Sequence[ParticipantProfile],
        score_index: ScoreIndex,
    ) -> FormationResult:
        """
        Partition participants into groups over the threshold schedule.

        Args:
            participants: Eligible participants in stable order
            score_index: Pair scores of all participants

        Returns:
            FormationResult with groups, unmatched participants, warnings
            and the per-threshold breakdown
        """
        if len(participants) < self.min_group_size:
            return FormationResult(
                unmatched=list(participants),
                warnings=[self.not_enough_warning()],
            )

        groups: List[GroupCandidate] = []
        assigned: Set[str] = set()
        warnings: List[str] = []
        breakdown: List[ThresholdBreakdown] = []

        for threshold in self.thresholds:
            remaining = [p for p in participants if p.participant_id not in assigned]
            if len(remaining) < self.min_group_size:
                break

            threshold_groups = self.form_groups_with_threshold(
                remaining, score_index, threshold, assigned
            )
            if not threshold_groups:
                logger.info(f"Threshold {threshold}: no groups formed")
                continue

            groups.extend(threshold_groups)
            matched = sum(g.size for g in threshold_groups)
            for group in threshold_groups:
                assigned.update(group.member_ids)

            breakdown.append(ThresholdBreakdown(threshold, len(threshold_groups), matched))
            warnings.append(
                f"Threshold {threshold}%: Formed {len(threshold_groups)} group(s) with {matched} participants"
            )
            logger.info(f"Threshold {threshold}: {len(threshold_groups)} groups, {matched} participants")

        unmatched = [p for p in participants if p.participant_id not in assigned]
        if unmatched:
            warnings.append(
                f"{len(unmatched)} participant(s) could not be matched even with minimum threshold"
            )
            logger.warning(f"{len(unmatched)} participant(s) left unmatched")
        if not groups:
            warnings.append("No groups could be formed with any threshold")

        return FormationResult(
            groups=groups,
            unmatched=unmatched,
            warnings=warnings,
            threshold_breakdown=breakdown,
        )

    def form_groups_with_threshold(
        self,
        participants: Sequence[ParticipantProfile],
        score_index: ScoreIndex,
        threshold: float,
        global_assigned: Set[str],
    ) -> List[GroupCandidate]:
        """
        Try several seeds at one threshold and keep the best coverage.

        Args:
            participants: Participants not yet committed to a group
            score_index: Pair scores
            threshold: Minimum average score for admission
            global_assigned: Ids committed at earlier thresholds (not modified)

        Returns:
            Groups of the attempt that covered the most participants
        """
        available = [p for p in participants if p.participant_id not in global_assigned]
        if len(available) < self.min_group_size:
            return []

        best_groups: List[GroupCandidate] = []
        best_coverage = 0

        # Seeds beyond the pool size would repeat earlier attempts
        for seed_attempt in range(min(self.max_seed_attempts, len(available))):
            local_assigned = set(global_assigned)
            attempt_groups: List[GroupCandidate] = []

            seed = available[seed_attempt]
            group = self.form_single_group(seed, available, score_index, threshold, local_assigned)

            while group is not None:
                group.seed_attempt = seed_attempt
                attempt_groups.append(group)

                remaining = [p for p in available if p.participant_id not in local_assigned]
                if len(remaining) < self.min_group_size:
                    break
                group = self.form_single_group(
                    remaining[0], remaining, score_index, threshold, local_assigned
                )

            coverage = sum(g.size for g in attempt_groups)
            logger.debug(
                f"Threshold {threshold}, seed {seed_attempt} ({seed.participant_id}): "
                f"{len(attempt_groups)} groups, coverage {coverage}/{len(available)}"
            )

            if coverage > best_coverage:
                best_coverage = coverage
                best_groups = attempt_groups

            if coverage == len(available):
                break

        return best_groups

    def form_single_group(
        self,
        seed: ParticipantProfile,
        available: Sequence[ParticipantProfile],
        score_index: ScoreIndex,
        threshold: float,
        assigned: Set[str],
    ) -> Optional[GroupCandidate]:
        """
        Grow one group greedily from a seed.

        Candidates are ranked by their score against the seed, and
        each one is re-checked against the grown group before admission.
        Members of an undersized group are released from ``assigned``.

        Returns:
            The group, or None if it stayed below min_group_size
        """
        group = [seed]
        assigned.add(seed.participant_id)

        ranked = []
        for candidate in available:
            if candidate.participant_id in assigned:
                continue
            avg = score_index.average_with_group(candidate.participant_id, [seed.participant_id])
            if avg >= threshold:
                ranked.append((candidate, avg))
        ranked.sort(key=lambda item: item[1], reverse=True)

        for candidate, _ in ranked:
            if len(group) >= self.max_group_size:
                break
            group_ids = [m.participant_id for m in group]
            if score_index.average_with_group(candidate.participant_id, group_ids) >= threshold:
                group.append(candidate)
                assigned.add(candidate.participant_id)

        if len(group) < self.min_group_size:
            for member in group:
                assigned.discard(member.participant_id)
            return None

        member_ids = [m.participant_id for m in group]
        pair_scores = score_index.group_scores(member_ids)
        values = [s.score for s in pair_scores]

        return GroupCandidate(
            members=group,
            average_match_score=round_score(sum(values) / len(values)) if values else 0.0,
            min_match_score=round_score(min(values)) if values else 0.0,
            match_scores=pair_scores,
            threshold_used=threshold,
        )
