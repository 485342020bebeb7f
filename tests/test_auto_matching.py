"""Tests for the scheduled auto-matching sweep."""

from datetime import timedelta, timezone
from typing import List

import pytest

from conftest import EVENT_ID, NOW, make_profile, make_source
from groupmatch.orchestrator import MatchingOrchestrator
from groupmatch.scheduling import AutoMatchingSweep, Notifier


class RecordingNotifier(Notifier):

    def __init__(self):
        self.participants: List[str] = []
        self.admin: List[str] = []
        self.failures: List[str] = []

    def notify_participant(self, event, participant, group_number):
        self.participants.append(participant.participant_id)

    def notify_admin(self, event, result):
        self.admin.append(event.event_id)

    def notify_failure(self, event, error):
        self.failures.append(event.event_id)


def event_row(event_id, start, status="published", is_active=True):
    return {"event_id": event_id, "title": f"Event {event_id}", "start_time": start,
            "status": status, "is_active": is_active}


@pytest.fixture
def profiles():
    return [make_profile(f"p{i}") for i in range(4)]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sweep(profiles, store, config, notifier):
    due = NOW + timedelta(hours=24, minutes=30)
    source = make_source(
        profiles,
        start_time=due,
        extra_events=[
            event_row("later", NOW + timedelta(hours=25)),
            event_row("draft", due, status="draft"),
            event_row("inactive", due, is_active=False),
        ],
    )
    orchestrator = MatchingOrchestrator(source, store, config, clock=lambda: NOW)
    return AutoMatchingSweep(orchestrator, notifier, clock=lambda: NOW)


def test_only_due_events_are_matched(sweep, store, notifier):
    summary = sweep.run_sweep(NOW)

    assert summary.events_found == 1
    assert summary.events_processed == 1
    assert summary.groups_formed == 1
    assert summary.participants_matched == 4
    assert store.get_auto_matched_at(EVENT_ID) == NOW
    assert store.list_attempts(EVENT_ID)[0].executed_by == "system"
    assert notifier.participants == ["p0", "p1", "p2", "p3"]
    assert notifier.admin == [EVENT_ID]


def test_second_sweep_is_a_no_op(sweep, store):
    sweep.run_sweep(NOW)

    summary = sweep.run_sweep(NOW)

    assert summary.events_found == 0
    assert len(store.list_attempts(EVENT_ID)) == 1


def test_overlapping_sweep_is_skipped(sweep, store, caplog):
    sweep._busy.acquire()
    try:
        assert sweep.is_running
        assert sweep.run_sweep(NOW) is None
    finally:
        sweep._busy.release()

    assert not sweep.is_running
    assert "already running" in caplog.text
    assert store.list_attempts(EVENT_ID) == []


def test_aware_clock_with_naive_event_times(sweep, store):
    # same instant as NOW, expressed in UTC
    aware_now = NOW.astimezone(timezone.utc)
    sweep.clock = lambda: aware_now

    summary = sweep.run_sweep()

    assert summary.events_found == 1
    assert summary.events_processed == 1
    assert store.is_auto_matched(EVENT_ID)


def test_aware_event_times_with_naive_clock(profiles, store, config):
    start = (NOW + timedelta(hours=24, minutes=30)).astimezone(timezone.utc)
    source = make_source(profiles, start_time=start)
    orchestrator = MatchingOrchestrator(source, store, config, clock=lambda: NOW)

    summary = AutoMatchingSweep(orchestrator, RecordingNotifier(), clock=lambda: NOW).run_sweep()

    assert summary.events_processed == 1


def test_failure_is_isolated_and_reported(sweep, store, notifier, monkeypatch):
    good = sweep.orchestrator.source.get_event(EVENT_ID)
    bad = good.__class__(event_id="broken", title="Broken", start_time=good.start_time)
    monkeypatch.setattr(sweep, "find_due_events", lambda now: [bad, good])

    summary = sweep.run_sweep(NOW)

    assert summary.events_failed == 1
    assert summary.events_processed == 1
    assert notifier.failures == ["broken"]
    assert store.is_auto_matched(EVENT_ID)
    assert not store.is_auto_matched("broken")


def test_notification_errors_do_not_abort(sweep, store, notifier, monkeypatch):
    def broken(event, participant, group_number):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notifier, "notify_participant", broken)

    summary = sweep.run_sweep(NOW)

    assert summary.events_processed == 1
    assert notifier.admin == [EVENT_ID]


def test_manual_trigger_rematches_flagged_event(sweep, store):
    sweep.run_sweep(NOW)

    result = sweep.manual_trigger(EVENT_ID)

    assert result.statistics.total_groups == 1
    attempts = store.list_attempts(EVENT_ID)
    assert [a.executed_by for a in attempts] == ["manual", "system"]
    assert store.is_auto_matched(EVENT_ID)


def test_reset_flag(sweep, store):
    sweep.run_sweep(NOW)

    sweep.reset_auto_matching_flag(EVENT_ID)

    assert not store.is_auto_matched(EVENT_ID)
    assert sweep.run_sweep(NOW).events_processed == 1
