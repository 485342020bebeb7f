"""
Storage module: persisted records and the matching store contract.

ResultPersistence lives in ``groupmatch.storage.persistence`` and is
imported from there, since it depends on the evaluation results.
"""

from .models import (
    MatchingStatus,
    MatchingGroup,
    GroupMember,
    MatchingAttempt,
    new_id,
)
from .store import MatchingStore, InMemoryMatchingStore

__all__ = [
    "MatchingStatus",
    "MatchingGroup",
    "GroupMember",
    "MatchingAttempt",
    "new_id",
    "MatchingStore",
    "InMemoryMatchingStore",
]
