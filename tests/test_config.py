"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from groupmatch.configs import MatchingConfig, get_config_value, load_config, validate_config

PROJECT_CONFIG = Path(__file__).parent.parent / "configs" / "config.yaml"


def test_project_config_is_valid():
    config = load_config(str(PROJECT_CONFIG))

    assert validate_config(config) == []
    matching = MatchingConfig.from_config(config)
    assert matching.thresholds == [70, 65, 60, 55, 50, 0]
    assert matching.max_seed_attempts == 10
    assert (matching.min_group_size, matching.max_group_size) == (3, 5)
    assert matching.weight_cosine == 0.7


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_empty_file_raises(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    with pytest.raises(ValueError):
        load_config(str(path))


def test_validate_reports_problems():
    config = {
        "global": {},
        "matching": {"thresholds": [60, 70], "min_group_size": 6, "max_group_size": 5},
        "scoring": {"weights": {"cosine": 0.5, "lifestyle": 0.1, "comfort": 0.1}},
    }

    issues = validate_config(config)

    assert any("descending" in issue for issue in issues)
    assert any("min_group_size" in issue for issue in issues)
    assert any("sum to 1" in issue for issue in issues)


def test_missing_sections_fall_back_to_defaults():
    matching = MatchingConfig.from_config({"global": {"log_level": "DEBUG"}})

    assert matching == MatchingConfig(log_level="DEBUG")
    assert "Missing required section: matching" in validate_config({"global": {}})


def test_get_config_value():
    config = {"scoring": {"weights": {"cosine": 0.7}}}

    assert get_config_value(config, "scoring.weights.cosine") == 0.7
    assert get_config_value(config, "scoring.weights.missing", 1) == 1


@pytest.mark.parametrize("overrides", [
    {"thresholds": []},
    {"thresholds": [50, 50]},
    {"max_seed_attempts": 0},
    {"min_group_size": 1},
    {"weight_cosine": 0.9},
    {"window_end_hours": 24},
])
def test_invalid_matching_config(overrides):
    with pytest.raises(ValueError):
        MatchingConfig(**overrides).validate()


def test_from_file_round_trip(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "global": {"log_level": "WARNING"},
        "matching": {"thresholds": [80, 40], "max_seed_attempts": 3},
        "scoring": {},
    }))

    matching = MatchingConfig.from_file(str(path))

    assert matching.thresholds == [80, 40]
    assert matching.max_seed_attempts == 3
    assert MatchingConfig.from_dict(matching.to_dict()) == matching
