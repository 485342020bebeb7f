"""Group formation module: the multi-pass, multi-seed heuristic."""

from .algorithm import (
    GroupFormationAlgorithm,
    GroupCandidate,
    FormationResult,
    ThresholdBreakdown,
    NOT_ENOUGH_PARTICIPANTS,
)

__all__ = [
    "GroupFormationAlgorithm",
    "GroupCandidate",
    "FormationResult",
    "ThresholdBreakdown",
    "NOT_ENOUGH_PARTICIPANTS",
]
