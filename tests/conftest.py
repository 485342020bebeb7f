"""Shared fixtures for the matching engine tests."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import pytest

from groupmatch.configs import MatchingConfig
from groupmatch.eligibility import DataFrameRegistrationSource, profiles_to_frame
from groupmatch.orchestrator import MatchingOrchestrator
from groupmatch.profiles import ParticipantProfile, RawScores
from groupmatch.scoring import PairScore, ScoreBreakdown, ScoreIndex
from groupmatch.storage import InMemoryMatchingStore

NOW = datetime(2026, 3, 1, 12, 0, 0)
EVENT_ID = "evt-1"


def make_profile(
    participant_id: str,
    raw: Tuple[float, float, float, float] = (5, 5, 5, 5),
    lifestyle: float = 50,
    comfort: float = 50,
    registration_id: Optional[str] = None,
) -> ParticipantProfile:
    E, O, S, A = raw
    return ParticipantProfile(
        participant_id=participant_id,
        registration_id=registration_id or f"reg-{participant_id}",
        name=f"Name {participant_id}",
        email=f"{participant_id}@example.com",
        energy_score=50,
        openness_score=50,
        structure_score=50,
        affect_score=50,
        comfort_score=comfort,
        lifestyle_score=lifestyle,
        raw_scores=RawScores(E=E, O=O, S=S, A=A),
    )


def make_index(scores: Dict[Tuple[str, str], float]) -> ScoreIndex:
    """Build a score index from hand-picked pair scores."""
    pairs = [
        PairScore(a, b, score, ScoreBreakdown(score, 0.0, 0.0))
        for (a, b), score in scores.items()
    ]
    return ScoreIndex(pairs)


def uniform_index(ids: Sequence[str], score: float) -> ScoreIndex:
    """Every pair of ids scores the same."""
    return make_index({
        (a, b): score for i, a in enumerate(ids) for b in ids[i + 1:]
    })


def make_source(
    profiles: Sequence[ParticipantProfile],
    event_id: str = EVENT_ID,
    start_time: datetime = NOW + timedelta(days=7),
    extra_registrations: Optional[List[Dict]] = None,
    extra_events: Optional[List[Dict]] = None,
) -> DataFrameRegistrationSource:
    events = pd.DataFrame(
        [{"event_id": event_id, "title": "Test dinner", "start_time": start_time,
          "status": "published", "is_active": True}]
        + (extra_events or [])
    )
    registrations = pd.DataFrame(
        [
            {"registration_id": p.registration_id, "participant_id": p.participant_id,
             "event_id": event_id, "status": "paid", "registration_type": "event"}
            for p in profiles
        ]
        + (extra_registrations or []),
        columns=["registration_id", "participant_id", "event_id", "status", "registration_type"],
    )
    return DataFrameRegistrationSource(events, registrations, profiles_to_frame(list(profiles)))


@pytest.fixture
def config():
    return MatchingConfig()


@pytest.fixture
def store():
    return InMemoryMatchingStore()


@pytest.fixture
def similar_profiles():
    """Seven participants with identical trait vectors."""
    return [make_profile(f"p{i}") for i in range(7)]


@pytest.fixture
def source(similar_profiles):
    return make_source(similar_profiles)


@pytest.fixture
def orchestrator(source, store, config):
    return MatchingOrchestrator(source, store, config, clock=lambda: NOW)
