"""Evaluation module: run-level and group-level matching statistics."""

from .statistics import (
    StatisticsAggregator,
    MatchingStatistics,
    MatchingResult,
    derive_status,
    GROUP_FRAME_COLUMNS,
)

__all__ = [
    "StatisticsAggregator",
    "MatchingStatistics",
    "MatchingResult",
    "derive_status",
    "GROUP_FRAME_COLUMNS",
]
