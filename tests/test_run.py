"""Tests for the command-line entry point."""

import pandas as pd
import pytest

from conftest import EVENT_ID, NOW, make_profile, make_source
from groupmatch.run import main
from groupmatch.storage import InMemoryMatchingStore


@pytest.fixture
def data_dir(tmp_path):
    source = make_source([make_profile(f"p{i}") for i in range(6)])
    source.events.to_csv(tmp_path / "events.csv", index=False)
    source.registrations.to_csv(tmp_path / "registrations.csv", index=False)
    source.profiles.to_csv(tmp_path / "profiles.csv", index=False)
    return tmp_path


def cli(*args):
    return main(["--config", "missing.yaml", *args])


def test_run_writes_store_and_csv(data_dir, tmp_path, capsys):
    store_path = tmp_path / "store.json"
    output = tmp_path / "groups.csv"

    code = cli("run", "--data-dir", str(data_dir), "--store", str(store_path),
               "--event", EVENT_ID, "--output", str(output))

    assert code == 0
    assert "Status: PARTIALLY_MATCHED" in capsys.readouterr().out
    store = InMemoryMatchingStore.load(str(store_path))
    assert [g.group_size for g in store.list_groups(EVENT_ID)] == [5]
    assert store.list_attempts(EVENT_ID)[0].executed_by == "cli"
    assert len(pd.read_csv(output)) == 5


def test_preview_and_history(data_dir, tmp_path, capsys):
    store_path = tmp_path / "store.json"

    assert cli("preview", "--data-dir", str(data_dir), "--event", EVENT_ID) == 0
    assert cli("history", "--store", str(store_path), "--event", EVENT_ID) == 0
    assert "No matching attempts" in capsys.readouterr().out

    cli("run", "--data-dir", str(data_dir), "--store", str(store_path), "--event", EVENT_ID)
    assert cli("history", "--store", str(store_path), "--event", EVENT_ID) == 0
    assert "#1 " in capsys.readouterr().out


def test_sweep_with_reference_time(data_dir, tmp_path, capsys):
    store_path = tmp_path / "store.json"
    # the fixture event starts seven days after NOW
    now = NOW.replace(day=7, hour=11, minute=30)

    code = cli("sweep", "--data-dir", str(data_dir), "--store", str(store_path), "--now", now.isoformat())

    assert code == 0
    assert "'events_processed': 1" in capsys.readouterr().out
    assert InMemoryMatchingStore.load(str(store_path)).is_auto_matched(EVENT_ID)


def test_unknown_event_exits_with_error(data_dir):
    assert cli("run", "--data-dir", str(data_dir), "--event", "nope") == 1


def test_missing_data_dir(tmp_path):
    assert cli("preview", "--data-dir", str(tmp_path / "none"), "--event", EVENT_ID) == 1
