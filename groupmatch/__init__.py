"""
Group Matching Engine

This package assigns the participants of an event to small compatibility
groups (3-5 people) based on a personality-vector similarity score.

Key Design Decisions:
- Pairwise scores are a fixed, deterministic formula (no trained model)
- Groups are formed greedily over a descending threshold schedule, with
  several seed attempts per threshold and "keep best coverage" selection
- Results replace previous results per event; every run is logged as an
  immutable attempt
- Manual overrides run as single transactional units and keep member score
  maps and group statistics consistent
"""

__version__ = "1.0.0"
