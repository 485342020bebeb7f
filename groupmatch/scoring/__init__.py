"""Scoring module for pairwise compatibility scores."""

from .score_calculator import (
    ScoreCalculator,
    ScoreIndex,
    PairScore,
    ScoreBreakdown,
    round_score,
)

__all__ = [
    "ScoreCalculator",
    "ScoreIndex",
    "PairScore",
    "ScoreBreakdown",
    "round_score",
]
