"""
Registration and assessment data sources.

The matching engine only reads from the registration/assessment store.
This module defines that read contract and a pandas-backed implementation
that serves it from three tables (events, registrations, profiles), loaded
from CSV files for the command line and smoke tests.

Expected columns:
- events.csv: event_id, title, start_time, status, is_active
- registrations.csv: registration_id, participant_id, event_id, status,
  registration_type
- profiles.csv: participant_id, name, email, energy_score, openness_score,
  structure_score, affect_score, comfort_score, lifestyle_score, energy_raw,
  openness_raw, structure_raw, affect_raw, lifestyle_raw, comfort_raw and
  optionally relationship_status, gender_mix_comfort, intent (";"-separated)
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Any

import pandas as pd

from ..profiles import (
    EventRecord,
    EventStatus,
    ParticipantProfile,
    RawScores,
    Registration,
    RegistrationStatus,
    RegistrationType,
)

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ["event_id", "title", "start_time", "status", "is_active"]
REGISTRATION_COLUMNS = ["registration_id", "participant_id", "event_id", "status", "registration_type"]
PROFILE_COLUMNS = [
    "participant_id", "name", "email",
    "energy_score", "openness_score", "structure_score",
    "affect_score", "comfort_score", "lifestyle_score",
    "energy_raw", "openness_raw", "structure_raw",
    "affect_raw", "lifestyle_raw", "comfort_raw",
]
RAW_COLUMN_MAP = {
    "E": "energy_raw",
    "O": "openness_raw",
    "S": "structure_raw",
    "A": "affect_raw",
    "L": "lifestyle_raw",
    "C": "comfort_raw",
}


class RegistrationSource(ABC):
    """Read contract of the registration/assessment store."""

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[EventRecord]:
        """Return the event or None if unknown."""

    @abstractmethod
    def list_events(self) -> List[EventRecord]:
        """Return every event."""

    @abstractmethod
    def get_eligible_participants(self, event_id: str) -> List[ParticipantProfile]:
        """
        Participants with a paid event registration and a completed profile.

        Results keep the store's stable order, one entry per participant.
        """

    @abstractmethod
    def get_registration(self, event_id: str, participant_id: str) -> Optional[Registration]:
        """The participant's paid event registration, or None."""

    @abstractmethod
    def get_profile(self, participant_id: str, registration_id: str) -> Optional[ParticipantProfile]:
        """The participant's completed profile bound to a registration, or None."""


def _optional_str(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def _parse_intent(value: Any) -> List[str]:
    text = _optional_str(value)
    if not text:
        return []
    return [part.strip() for part in text.split(";") if part.strip()]


class DataFrameRegistrationSource(RegistrationSource):
    """
    Registration source backed by pandas DataFrames.

    Attributes:
        events: One row per event
        registrations: One row per registration
        profiles: One row per completed personality profile
    """

    def __init__(
        self,
        events: pd.DataFrame,
        registrations: pd.DataFrame,
        profiles: pd.DataFrame,
    ):
        missing = _missing_columns(events, EVENT_COLUMNS, "events")
        missing += _missing_columns(registrations, REGISTRATION_COLUMNS, "registrations")
        missing += _missing_columns(profiles, PROFILE_COLUMNS, "profiles")
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        self.events = events.copy()
        self.events["event_id"] = self.events["event_id"].astype(str)
        self.events["start_time"] = pd.to_datetime(self.events["start_time"])

        self.registrations = registrations.copy()
        for col in ["registration_id", "participant_id", "event_id"]:
            self.registrations[col] = self.registrations[col].astype(str)

        self.profiles = profiles.drop_duplicates(subset="participant_id", keep="last").copy()
        self.profiles["participant_id"] = self.profiles["participant_id"].astype(str)

    # =========================================================================
    # Events
    # =========================================================================

    def _to_event(self, row: pd.Series) -> EventRecord:
        start = row["start_time"]
        return EventRecord(
            event_id=str(row["event_id"]),
            title=str(row["title"]),
            start_time=start.to_pydatetime() if hasattr(start, "to_pydatetime") else start,
            status=EventStatus(str(row["status"]).lower()),
            is_active=bool(row["is_active"]),
        )

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        rows = self.events[self.events["event_id"] == event_id]
        if rows.empty:
            return None
        return self._to_event(rows.iloc[0])

    def list_events(self) -> List[EventRecord]:
        return [self._to_event(row) for _, row in self.events.iterrows()]

    # =========================================================================
    # Registrations and profiles
    # =========================================================================

    def _paid_registrations(self, event_id: str) -> pd.DataFrame:
        regs = self.registrations
        mask = (
            (regs["event_id"] == event_id)
            & (regs["status"].astype(str).str.lower() == RegistrationStatus.PAID.value)
            & (regs["registration_type"].astype(str).str.lower() == RegistrationType.EVENT.value)
        )
        return regs[mask]

    def _to_profile(self, row: pd.Series, registration_id: str) -> ParticipantProfile:
        raw = RawScores(**{key: float(row[col]) for key, col in RAW_COLUMN_MAP.items()})
        return ParticipantProfile(
            participant_id=str(row["participant_id"]),
            registration_id=str(registration_id),
            name=_optional_str(row.get("name")) or "",
            email=_optional_str(row.get("email")) or "",
            energy_score=float(row["energy_score"]),
            openness_score=float(row["openness_score"]),
            structure_score=float(row["structure_score"]),
            affect_score=float(row["affect_score"]),
            comfort_score=float(row["comfort_score"]),
            lifestyle_score=float(row["lifestyle_score"]),
            raw_scores=raw,
            relationship_status=_optional_str(row.get("relationship_status")),
            gender_mix_comfort=_optional_str(row.get("gender_mix_comfort")),
            intent=_parse_intent(row.get("intent")),
        )

    def get_eligible_participants(self, event_id: str) -> List[ParticipantProfile]:
        paid = self._paid_registrations(event_id).drop_duplicates(subset="participant_id", keep="first")
        merged = paid[["registration_id", "participant_id"]].merge(
            self.profiles, on="participant_id", how="inner"
        )
        return [self._to_profile(row, row["registration_id"]) for _, row in merged.iterrows()]

    def get_registration(self, event_id: str, participant_id: str) -> Optional[Registration]:
        paid = self._paid_registrations(event_id)
        rows = paid[paid["participant_id"] == participant_id]
        if rows.empty:
            return None
        row = rows.iloc[0]
        return Registration(
            registration_id=str(row["registration_id"]),
            participant_id=str(row["participant_id"]),
            event_id=str(row["event_id"]),
            status=RegistrationStatus.PAID,
            registration_type=RegistrationType.EVENT,
        )

    def get_profile(self, participant_id: str, registration_id: str) -> Optional[ParticipantProfile]:
        rows = self.profiles[self.profiles["participant_id"] == participant_id]
        if rows.empty:
            return None
        return self._to_profile(rows.iloc[0], registration_id)


def _missing_columns(df: pd.DataFrame, required: List[str], table: str) -> List[str]:
    return [f"{table}.{c}" for c in required if c not in df.columns]


def load_registration_source(data_dir: str, delimiter: str = ",") -> DataFrameRegistrationSource:
    """
    Load events, registrations and profiles from a directory of CSV files.

    Args:
        data_dir: Directory containing events.csv, registrations.csv, profiles.csv
        delimiter: Field delimiter

    Returns:
        DataFrameRegistrationSource over the loaded tables

    Raises:
        FileNotFoundError: If a table file doesn't exist
    """
    tables: Dict[str, pd.DataFrame] = {}
    for name in ["events", "registrations", "profiles"]:
        path = Path(data_dir) / f"{name}.csv"
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        logger.info(f"Loading {name} from {path}")
        tables[name] = pd.read_csv(path, sep=delimiter, dtype={"participant_id": str, "event_id": str})
        logger.info(f"Loaded {len(tables[name])} {name} rows")

    return DataFrameRegistrationSource(tables["events"], tables["registrations"], tables["profiles"])


def profiles_to_frame(profiles: List[ParticipantProfile]) -> pd.DataFrame:
    """Flatten profiles into the profiles.csv column layout."""
    rows = []
    for p in profiles:
        row = {
            "participant_id": p.participant_id,
            "name": p.name,
            "email": p.email,
            "energy_score": p.energy_score,
            "openness_score": p.openness_score,
            "structure_score": p.structure_score,
            "affect_score": p.affect_score,
            "comfort_score": p.comfort_score,
            "lifestyle_score": p.lifestyle_score,
            "relationship_status": p.relationship_status,
            "gender_mix_comfort": p.gender_mix_comfort,
            "intent": ";".join(p.intent),
        }
        raw = p.raw_scores.to_dict()
        row.update({col: raw[key] for key, col in RAW_COLUMN_MAP.items()})
        rows.append(row)
    return pd.DataFrame(rows)
