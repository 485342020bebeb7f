"""
Pairwise compatibility scoring.

This module computes the compatibility score between two participants.
It is pure and deterministic: the same two trait sets always give the
same score, whether scored in bulk before a matching run or one pair at
a time during a manual edit.

Score Formula:
    cosine_score   = (cosine(EOSA_A, EOSA_B) + 1) / 2 * 100
    lifestyle      = max(0, 20 - |lifestyle_A - lifestyle_B|)
    comfort        = 0.2 * min(comfort_A, comfort_B)
    score          = 0.7 * cosine_score + 0.15 * lifestyle + 0.15 * comfort

The final score is rounded to 2 decimals and lies in [0, 100].
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from sklearn.preprocessing import normalize

from ..configs import MatchingConfig
from ..profiles import ParticipantProfile, TraitSnapshot

logger = logging.getLogger(__name__)

Traits = Union[ParticipantProfile, TraitSnapshot]


def round_score(value: float) -> float:
    """Round a score to 2 decimals."""
    return round(float(value), 2)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Components of a pairwise score (each rounded to 2 decimals)."""
    cosine_score: float
    lifestyle_bonus: float
    comfort_bonus: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "cosine_score": self.cosine_score,
            "lifestyle_bonus": self.lifestyle_bonus,
            "comfort_bonus": self.comfort_bonus,
        }


@dataclass(frozen=True)
class PairScore:
    """
    Compatibility score for an unordered pair of participants.

    Never persisted on its own, only embedded in member score maps.
    """
    participant_id_1: str
    participant_id_2: str
    score: float
    breakdown: ScoreBreakdown

    def involves(self, participant_id: str) -> bool:
        return participant_id in (self.participant_id_1, self.participant_id_2)

    def other(self, participant_id: str) -> str:
        """Return the id on the other side of the pair."""
        if participant_id == self.participant_id_1:
            return self.participant_id_2
        if participant_id == self.participant_id_2:
            return self.participant_id_1
        raise KeyError(f"{participant_id} is not part of this pair")

    def to_dict(self) -> Dict[str, object]:
        return {
            "participant_id_1": self.participant_id_1,
            "participant_id_2": self.participant_id_2,
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
        }


class ScoreIndex:
    """
    Symmetric lookup of pair scores: id -> id -> PairScore.

    Built once per matching run from the bulk score list.
    """

    def __init__(self, pair_scores: Sequence[PairScore]):
        self._index: Dict[str, Dict[str, PairScore]] = {}
        for pair in pair_scores:
            self._index.setdefault(pair.participant_id_1, {})[pair.participant_id_2] = pair
            self._index.setdefault(pair.participant_id_2, {})[pair.participant_id_1] = pair

    def __len__(self) -> int:
        return sum(len(v) for v in self._index.values()) // 2

    def get(self, id_a: str, id_b: str) -> Optional[PairScore]:
        return self._index.get(id_a, {}).get(id_b)

    def average_with_group(self, participant_id: str, group_ids: Sequence[str]) -> float:
        """
        Average score between a participant and the current group members.

        Members without a known pair score are skipped; returns 0 when no
        score is known at all.
        """
        scores = self._index.get(participant_id)
        if not group_ids or not scores:
            return 0.0

        known = [scores[m].score for m in group_ids if m in scores]
        return float(sum(known) / len(known)) if known else 0.0

    def group_scores(self, group_ids: Sequence[str]) -> List[PairScore]:
        """All pair scores between members of a group, in member order."""
        pairs = []
        for i, id_a in enumerate(group_ids):
            for id_b in group_ids[i + 1:]:
                pair = self.get(id_a, id_b)
                if pair is not None:
                    pairs.append(pair)
        return pairs


class ScoreCalculator:
    """
    Computes compatibility scores between participants.

    Attributes:
        weight_cosine: Weight of the rescaled cosine similarity
        weight_lifestyle: Weight of the lifestyle bonus
        weight_comfort: Weight of the comfort bonus
        lifestyle_bonus_cap: Bonus when lifestyle scores are identical
        comfort_bonus_factor: Multiplier for the lower comfort score
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        config = config or MatchingConfig()
        self.weight_cosine = config.weight_cosine
        self.weight_lifestyle = config.weight_lifestyle
        self.weight_comfort = config.weight_comfort
        self.lifestyle_bonus_cap = config.lifestyle_bonus_cap
        self.comfort_bonus_factor = config.comfort_bonus_factor

    @staticmethod
    def _unit_vector(traits: Traits) -> np.ndarray:
        # Zero vectors stay zero, so their similarity with anything is 0
        vec = np.asarray(traits.raw_scores.to_vector(), dtype=float).reshape(1, -1)
        return normalize(vec, norm="l2")[0]

    def cosine_similarity(self, traits_a: Traits, traits_b: Traits) -> float:
        """
        Cosine similarity of the [E, O, S, A] vectors.

        Returns:
            Similarity in [-1, 1], or 0 if either vector has zero magnitude
        """
        return self._cosine_from_units(self._unit_vector(traits_a), self._unit_vector(traits_b))

    @staticmethod
    def _cosine_from_units(unit_a: np.ndarray, unit_b: np.ndarray) -> float:
        return float(np.clip(np.dot(unit_a, unit_b), -1.0, 1.0))

    def _combine(self, cosine_sim: float, traits_a: Traits, traits_b: Traits) -> Tuple[float, ScoreBreakdown]:
        cosine_score = (cosine_sim + 1) / 2 * 100

        lifestyle_gap = abs(float(traits_a.lifestyle_score) - float(traits_b.lifestyle_score))
        lifestyle_bonus = max(0.0, self.lifestyle_bonus_cap - lifestyle_gap)

        comfort_bonus = self.comfort_bonus_factor * min(
            float(traits_a.comfort_score), float(traits_b.comfort_score)
        )

        final_score = (
            self.weight_cosine * cosine_score
            + self.weight_lifestyle * lifestyle_bonus
            + self.weight_comfort * comfort_bonus
        )
        breakdown = ScoreBreakdown(
            cosine_score=round_score(cosine_score),
            lifestyle_bonus=round_score(lifestyle_bonus),
            comfort_bonus=round_score(comfort_bonus),
        )
        return round_score(final_score), breakdown

    def score_traits(
        self,
        participant_id_a: str,
        traits_a: Traits,
        participant_id_b: str,
        traits_b: Traits,
    ) -> PairScore:
        """
        Score two trait sets identified by participant id.

        Accepts live profiles or membership snapshots.
        """
        cosine_sim = self.cosine_similarity(traits_a, traits_b)
        score, breakdown = self._combine(cosine_sim, traits_a, traits_b)
        return PairScore(participant_id_a, participant_id_b, score, breakdown)

    def calculate_match_score(
        self, profile_a: ParticipantProfile, profile_b: ParticipantProfile
    ) -> PairScore:
        """Score two participant profiles."""
        return self.score_traits(
            profile_a.participant_id, profile_a, profile_b.participant_id, profile_b
        )

    def calculate_all_match_scores(
        self, participants: Sequence[ParticipantProfile]
    ) -> List[PairScore]:
        """
        Score every unordered pair of participants.

        Args:
            participants: Participants of one event

        Returns:
            Pair scores sorted by score, highest first
        """
        units = [self._unit_vector(p) for p in participants]

        scores: List[PairScore] = []
        for i, profile_a in enumerate(participants):
            for j in range(i + 1, len(participants)):
                profile_b = participants[j]
                cosine_sim = self._cosine_from_units(units[i], units[j])
                score, breakdown = self._combine(cosine_sim, profile_a, profile_b)
                scores.append(
                    PairScore(profile_a.participant_id, profile_b.participant_id, score, breakdown)
                )

        scores.sort(key=lambda s: s.score, reverse=True)
        logger.info(f"Computed {len(scores)} pair scores for {len(participants)} participants")
        return scores

    def build_index(self, participants: Sequence[ParticipantProfile]) -> ScoreIndex:
        """Score all pairs and index them for O(1) lookup."""
        return ScoreIndex(self.calculate_all_match_scores(participants))
