"""Tests for manual overrides: assign, move, remove, create and bulk assign."""

import pytest

from conftest import EVENT_ID, NOW, make_profile, make_source
from groupmatch.errors import ConflictError, InternalError, InvalidOperationError, NotFoundError
from groupmatch.orchestrator import MatchingOrchestrator
from groupmatch.storage import MatchingGroup

# x scores 57.0 with each of a-f, which score 74.5 with each other
VARIANT_RAW = (5, 5, 5, -5)


@pytest.fixture
def engine(store, config):
    profiles = [make_profile(pid) for pid in "abcdef"] + [make_profile("x", raw=VARIANT_RAW)]
    return MatchingOrchestrator(make_source(profiles), store, config, clock=lambda: NOW)


def group_number_of(store, number):
    return store.find_group_by_number(EVENT_ID, number)


def fill_group(engine, number, ids):
    for pid in ids:
        engine.assign(EVENT_ID, pid, number, "admin")
    return group_number_of(engine.store, number)


class TestAssign:

    def test_assign_creates_group_and_scores_both_ways(self, engine, store):
        fill_group(engine, 1, ["a", "b"])
        outcome = engine.assign(EVENT_ID, "x", 1, "admin", note="late signup")

        group = store.get_group(outcome.group.group_id)
        assert group.member_ids == ["a", "b", "x"]
        assert group.find_member("x").match_scores == {"a": 57.0, "b": 57.0}
        assert group.find_member("a").match_scores == {"b": 74.5, "x": 57.0}
        assert group.find_member("x").assignment_note == "late signup"
        assert group.find_member("x").is_manually_assigned
        assert group.group_size == 3
        assert group.min_match_score == 57.0
        assert group.has_manual_changes

    def test_full_group_rejected(self, engine, store):
        fill_group(engine, 1, ["a", "b", "c", "d", "e"])

        with pytest.raises(InvalidOperationError, match=r"Group 1 is already full \(max 5 members\)"):
            engine.assign(EVENT_ID, "f", 1, "admin")
        assert group_number_of(store, 1).group_size == 5

    def test_already_assigned(self, engine):
        fill_group(engine, 1, ["a"])

        with pytest.raises(ConflictError, match="already assigned to Group 1"):
            engine.assign(EVENT_ID, "a", 2, "admin")

    def test_ineligible_participant(self, engine, store):
        with pytest.raises(NotFoundError):
            engine.assign(EVENT_ID, "ghost", 1, "admin")
        assert store.list_groups(EVENT_ID) == []

    def test_unknown_event(self, engine):
        with pytest.raises(NotFoundError, match="Event not found"):
            engine.assign("nope", "a", 1, "admin")

    def test_store_failure_rolls_back(self, engine, store, monkeypatch):
        fill_group(engine, 1, ["a", "b"])
        before = group_number_of(store, 1)

        def broken_save(group):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(store, "save_group", broken_save)

        with pytest.raises(InternalError):
            engine.assign(EVENT_ID, "c", 1, "admin")
        assert group_number_of(store, 1) == before


class TestMove:

    def test_moving_last_member_deletes_source(self, engine, store):
        target = fill_group(engine, 1, ["a", "b", "c"])
        source = fill_group(engine, 2, ["x"])

        outcome = engine.move(EVENT_ID, "x", source.group_id, target.group_id, "admin2", note="swap")

        assert outcome.group_deleted
        assert store.get_group(source.group_id) is None
        group = store.get_group(target.group_id)
        assert group.group_size == 4
        assert group.find_member("x").match_scores == {"a": 57.0, "b": 57.0, "c": 57.0}
        assert all(group.find_member(pid).match_scores["x"] == 57.0 for pid in "abc")
        # three pairs at 74.5, three at 57.0
        assert group.average_match_score == 65.75
        assert group.min_match_score == 57.0
        moved = group.find_member("x")
        assert moved.previous_group_id == source.group_id
        assert moved.assigned_by == "admin2"
        assert moved.assignment_note == "swap"

    def test_source_keeps_consistent_statistics(self, engine, store):
        source = fill_group(engine, 1, ["a", "b", "x"])
        target = fill_group(engine, 2, ["c", "d", "e"])

        engine.move(EVENT_ID, "x", source.group_id, target.group_id, "admin")

        remaining = store.get_group(source.group_id)
        assert remaining.member_ids == ["a", "b"]
        assert remaining.find_member("a").match_scores == {"b": 74.5}
        assert remaining.average_match_score == 74.5

    def test_full_destination(self, engine):
        target = fill_group(engine, 1, ["a", "b", "c", "d", "e"])
        source = fill_group(engine, 2, ["x"])

        with pytest.raises(InvalidOperationError, match=r"^Group is already full \(max 5 members\)$"):
            engine.move(EVENT_ID, "x", source.group_id, target.group_id, "admin")

    def test_missing_group(self, engine):
        source = fill_group(engine, 1, ["a"])

        with pytest.raises(NotFoundError, match="One or both groups not found"):
            engine.move(EVENT_ID, "a", source.group_id, "nope", "admin")

    def test_participant_not_in_source(self, engine):
        source = fill_group(engine, 1, ["a"])
        target = fill_group(engine, 2, ["b"])

        with pytest.raises(NotFoundError, match="not found in source group"):
            engine.move(EVENT_ID, "c", source.group_id, target.group_id, "admin")

    def test_cross_event_move(self, engine, store):
        source = fill_group(engine, 1, ["a"])
        store.save_group(MatchingGroup(group_id="foreign", event_id="evt-2", group_number=1))

        with pytest.raises(InvalidOperationError, match="same event"):
            engine.move(EVENT_ID, "a", source.group_id, "foreign", "admin")

    def test_failed_delete_rolls_back_both_groups(self, engine, store, monkeypatch):
        target = fill_group(engine, 1, ["a", "b"])
        source = fill_group(engine, 2, ["x"])
        before = (store.get_group(target.group_id), store.get_group(source.group_id))

        def broken_delete(group_id):
            raise RuntimeError("constraint violation")

        monkeypatch.setattr(store, "delete_group", broken_delete)

        with pytest.raises(InternalError):
            engine.move(EVENT_ID, "x", source.group_id, target.group_id, "admin")
        assert (store.get_group(target.group_id), store.get_group(source.group_id)) == before


class TestRemove:

    def test_remove_strips_score_entries(self, engine, store):
        group = fill_group(engine, 1, ["a", "b", "x"])

        outcome = engine.remove(EVENT_ID, "x", group.group_id, "admin", reason="cancelled")

        assert not outcome.group_deleted
        group = store.get_group(group.group_id)
        assert group.member_ids == ["a", "b"]
        assert all("x" not in m.match_scores for m in group.members)
        assert group.average_match_score == 74.5

    def test_removing_last_member_deletes_group(self, engine, store):
        group = fill_group(engine, 1, ["a"])

        outcome = engine.remove(EVENT_ID, "a", group.group_id, "admin")

        assert outcome.group_deleted
        assert store.get_group(group.group_id) is None

    def test_not_in_group(self, engine):
        group = fill_group(engine, 1, ["a"])

        with pytest.raises(NotFoundError, match="Participant not found in group"):
            engine.remove(EVENT_ID, "b", group.group_id, "admin")


class TestCreateManualGroup:

    def test_create_empty_group(self, engine, store):
        outcome = engine.create_manual_group(EVENT_ID, 4, "admin", table_number="T4", venue_name="Roof")

        group = store.get_group(outcome.group.group_id)
        assert group.group_number == 4
        assert group.group_size == 0
        assert group.has_manual_changes
        assert (group.table_number, group.venue_name) == ("T4", "Roof")

    def test_duplicate_number(self, engine):
        engine.create_manual_group(EVENT_ID, 1, "admin")

        with pytest.raises(ConflictError, match="Group 1 already exists"):
            engine.create_manual_group(EVENT_ID, 1, "admin")

    def test_invalid_number(self, engine):
        with pytest.raises(InvalidOperationError):
            engine.create_manual_group(EVENT_ID, 0, "admin")


class TestBulkAssign:

    def test_partial_failures_do_not_abort(self, engine, store):
        group = fill_group(engine, 1, ["a", "b", "c"])

        result = engine.bulk_assign(EVENT_ID, ["d", "ghost", "a", "e", "f"], group.group_id, "admin")

        assert result.success == ["d", "e"]
        assert result.failed == [
            {"participant_id": "ghost", "reason": "No paid registration found"},
            {"participant_id": "a", "reason": "Participant is already assigned to Group 1"},
            {"participant_id": "f", "reason": "Group 1 is already full (max 5 members)"},
        ]
        assert group_number_of(store, 1).group_size == 5
        assert result.to_dict()["success_count"] == 2

    def test_missing_target_group(self, engine):
        result = engine.bulk_assign(EVENT_ID, ["a"], "nope", "admin")

        assert result.failed == [{"participant_id": "a", "reason": "Target group not found"}]
