"""
Input schema for matching participants.

Defines the data structures the matching engine borrows from the
registration and personality-assessment subsystems.

Trait Composition:
- Normalized scores (0-100): energy, openness, structure, affect,
  comfort, lifestyle
- Raw scores: E, O, S, A (each -10..10, used for cosine similarity),
  plus raw L and C (informational)
- Context: relationship status, gender-mix comfort, stated intent
  (informational only, not scored)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

RAW_BOUND = 10.0
NORMALIZED_TRAITS = [
    "energy_score",
    "openness_score",
    "structure_score",
    "affect_score",
    "comfort_score",
    "lifestyle_score",
]


class RegistrationStatus(Enum):
    """Payment status of an event registration."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class RegistrationType(Enum):
    """What a registration pays for."""
    EVENT = "event"
    SUBSCRIPTION = "subscription"


class EventStatus(Enum):
    """Publication status of an event."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class RawScores:
    """
    Raw personality scores.

    Attributes:
        E: Energy (-10..10)
        O: Openness (-10..10)
        S: Structure (-10..10)
        A: Affect (-10..10)
        L: Lifestyle (informational)
        C: Comfort (informational)
    """
    E: float
    O: float
    S: float
    A: float
    L: float = 0.0
    C: float = 0.0

    def __post_init__(self):
        """Validate bounds of the similarity dimensions."""
        for attr in ["E", "O", "S", "A"]:
            val = getattr(self, attr)
            if not -RAW_BOUND <= val <= RAW_BOUND:
                raise ValueError(f"raw score {attr} must be between -10 and 10, got {val}")

    def to_vector(self) -> List[float]:
        """
        Convert to the similarity vector in standard order.

        Returns:
            List of 4 floats: [E, O, S, A]
        """
        return [float(self.E), float(self.O), float(self.S), float(self.A)]

    def to_dict(self) -> Dict[str, float]:
        return {k: float(getattr(self, k)) for k in ["E", "O", "S", "A", "L", "C"]}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RawScores":
        return cls(
            E=d["E"], O=d["O"], S=d["S"], A=d["A"],
            L=d.get("L", 0.0), C=d.get("C", 0.0),
        )


@dataclass(frozen=True)
class TraitSnapshot:
    """
    Trait scores frozen at the moment a participant joined a group.

    Stored on membership records so that later profile edits never
    rewrite matching history. Carries everything the score calculator
    needs, so a snapshot can be scored like a live profile.
    """
    energy_score: float
    openness_score: float
    structure_score: float
    affect_score: float
    comfort_score: float
    lifestyle_score: float
    raw_scores: RawScores

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {t: float(getattr(self, t)) for t in NORMALIZED_TRAITS}
        d["raw_scores"] = self.raw_scores.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TraitSnapshot":
        return cls(
            raw_scores=RawScores.from_dict(d["raw_scores"]),
            **{t: d[t] for t in NORMALIZED_TRAITS},
        )


@dataclass(frozen=True)
class ParticipantProfile:
    """
    A participant eligible for matching.

    Created once per completed personality assessment and immutable for
    the duration of a matching run.

    Attributes:
        participant_id: Unique participant identifier
        registration_id: Paid registration linking the participant to the event
        name: Display name
        email: Contact address
        energy_score .. lifestyle_score: Normalized traits (0-100)
        raw_scores: Raw trait scores
        relationship_status: Optional context (not scored)
        gender_mix_comfort: Optional context (not scored)
        intent: Stated intents (not scored)
    """
    participant_id: str
    registration_id: str
    name: str
    email: str
    energy_score: float
    openness_score: float
    structure_score: float
    affect_score: float
    comfort_score: float
    lifestyle_score: float
    raw_scores: RawScores
    relationship_status: Optional[str] = None
    gender_mix_comfort: Optional[str] = None
    intent: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate normalized trait bounds."""
        for attr in NORMALIZED_TRAITS:
            val = getattr(self, attr)
            if not 0 <= val <= 100:
                raise ValueError(f"{attr} must be between 0 and 100, got {val}")

    def to_snapshot(self) -> TraitSnapshot:
        """Freeze the current trait scores."""
        return TraitSnapshot(
            raw_scores=self.raw_scores,
            **{t: float(getattr(self, t)) for t in NORMALIZED_TRAITS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: Dict[str, Any] = {
            "participant_id": self.participant_id,
            "registration_id": self.registration_id,
            "name": self.name,
            "email": self.email,
        }
        d.update({t: float(getattr(self, t)) for t in NORMALIZED_TRAITS})
        d["raw_scores"] = self.raw_scores.to_dict()
        d["relationship_status"] = self.relationship_status
        d["gender_mix_comfort"] = self.gender_mix_comfort
        d["intent"] = list(self.intent)
        return d


@dataclass(frozen=True)
class Registration:
    """A participant's registration (purchase) for an event."""
    registration_id: str
    participant_id: str
    event_id: str
    status: RegistrationStatus = RegistrationStatus.PAID
    registration_type: RegistrationType = RegistrationType.EVENT


@dataclass(frozen=True)
class EventRecord:
    """The parts of an event the matching engine cares about."""
    event_id: str
    title: str
    start_time: datetime
    status: EventStatus = EventStatus.PUBLISHED
    is_active: bool = True
