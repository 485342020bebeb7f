"""
Configuration loading and validation.

This module handles loading of the YAML configuration file, reports
problems with its contents, and exposes the typed ``MatchingConfig``
used by every component of the engine.
"""

import logging
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, Any, List

import yaml

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = [70, 65, 60, 55, 50, 0]


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        filepath: Path to the YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the config file is empty
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    logger.info(f"Loading configuration from {filepath}")
    with open(filepath, "r") as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Configuration file is empty: {filepath}")

    return config


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration and return list of warnings/errors.

    Args:
        config: Configuration dictionary

    Returns:
        List of warning/error messages (empty if valid)
    """
    issues = []

    required_sections = ["global", "matching", "scoring"]
    for section in required_sections:
        if section not in config:
            issues.append(f"Missing required section: {section}")

    if "matching" in config:
        matching = config["matching"]
        thresholds = matching.get("thresholds", DEFAULT_THRESHOLDS)
        if not thresholds:
            issues.append("matching.thresholds must not be empty")
        elif any(a <= b for a, b in zip(thresholds, thresholds[1:])):
            issues.append(f"matching.thresholds must be strictly descending: {thresholds}")

        min_size = matching.get("min_group_size", 3)
        max_size = matching.get("max_group_size", 5)
        if min_size > max_size:
            issues.append(f"min_group_size ({min_size}) exceeds max_group_size ({max_size})")

        if matching.get("max_seed_attempts", 10) < 1:
            issues.append("matching.max_seed_attempts must be at least 1")

    # Score weights must sum to 1
    if "scoring" in config and "weights" in config["scoring"]:
        w = config["scoring"]["weights"]
        total = sum(w.values())
        if abs(total - 1.0) > 0.01:
            issues.append(f"Scoring weights don't sum to 1: {total}")

    return issues


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "matching.max_seed_attempts")
        default: Default value if path doesn't exist

    Returns:
        Configuration value or default
    """
    keys = path.split(".")
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


@dataclass
class MatchingConfig:
    """
    Typed configuration for a matching run.

    Attributes:
        thresholds: Descending minimum-average-score cutoffs tried in order
        max_seed_attempts: Seed attempts per threshold
        min_group_size: Smallest group that may be formed
        max_group_size: Largest group that may be formed
        weight_cosine: Weight of the rescaled cosine similarity
        weight_lifestyle: Weight of the lifestyle bonus
        weight_comfort: Weight of the comfort bonus
        lifestyle_bonus_cap: Lifestyle bonus when lifestyle scores are equal
        comfort_bonus_factor: Multiplier applied to the lower comfort score
        window_start_hours: Sweep window start, hours ahead of now
        window_end_hours: Sweep window end, hours ahead of now
        log_level: Logging level name
    """
    thresholds: List[float] = field(default_factory=lambda: list(DEFAULT_THRESHOLDS))
    max_seed_attempts: int = 10
    min_group_size: int = 3
    max_group_size: int = 5

    weight_cosine: float = 0.7
    weight_lifestyle: float = 0.15
    weight_comfort: float = 0.15
    lifestyle_bonus_cap: float = 20.0
    comfort_bonus_factor: float = 0.2

    window_start_hours: int = 24
    window_end_hours: int = 25

    log_level: str = "INFO"

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.thresholds:
            raise ValueError("thresholds must not be empty")
        if any(a <= b for a, b in zip(self.thresholds, self.thresholds[1:])):
            raise ValueError(f"thresholds must be strictly descending, got {self.thresholds}")
        if self.max_seed_attempts < 1:
            raise ValueError(f"max_seed_attempts must be >= 1, got {self.max_seed_attempts}")
        if self.min_group_size < 2:
            raise ValueError(f"min_group_size must be >= 2, got {self.min_group_size}")
        if self.min_group_size > self.max_group_size:
            raise ValueError(
                f"min_group_size ({self.min_group_size}) exceeds max_group_size ({self.max_group_size})"
            )
        total = self.weight_cosine + self.weight_lifestyle + self.weight_comfort
        if abs(total - 1.0) > 0.01:
            raise ValueError(f"Scoring weights don't sum to 1: {total}")
        if self.window_end_hours <= self.window_start_hours:
            raise ValueError("window_end_hours must be after window_start_hours")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MatchingConfig":
        """Create from dictionary."""
        return cls(**d)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MatchingConfig":
        """Create from main config dictionary."""
        matching = config.get("matching", {})
        scoring = config.get("scoring", {})
        weights = scoring.get("weights", {})
        scheduling = config.get("scheduling", {})

        return cls(
            thresholds=list(matching.get("thresholds", DEFAULT_THRESHOLDS)),
            max_seed_attempts=matching.get("max_seed_attempts", 10),
            min_group_size=matching.get("min_group_size", 3),
            max_group_size=matching.get("max_group_size", 5),
            weight_cosine=weights.get("cosine", 0.7),
            weight_lifestyle=weights.get("lifestyle", 0.15),
            weight_comfort=weights.get("comfort", 0.15),
            lifestyle_bonus_cap=scoring.get("lifestyle_bonus_cap", 20.0),
            comfort_bonus_factor=scoring.get("comfort_bonus_factor", 0.2),
            window_start_hours=scheduling.get("window_start_hours", 24),
            window_end_hours=scheduling.get("window_end_hours", 25),
            log_level=config.get("global", {}).get("log_level", "INFO"),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "MatchingConfig":
        """Load, check and build the typed configuration from a YAML file."""
        config = load_config(filepath)
        for issue in validate_config(config):
            logger.warning(f"Config issue: {issue}")
        matching_config = cls.from_config(config)
        matching_config.validate()
        return matching_config
