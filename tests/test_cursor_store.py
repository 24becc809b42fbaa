"""Tests for change cursor persistence."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from src.sync.cursor_store import ChangeCursorStore

log = structlog.stdlib.get_logger()


def test_missing_state_file_means_never_synced(tmp_path):
    store = ChangeCursorStore(tmp_path / "sync_state.json")

    assert store.load() is None
    assert store.load_state() is None


def test_save_then_load(tmp_path):
    store = ChangeCursorStore(tmp_path / "nested" / "sync_state.json")
    token = datetime(2024, 6, 15, 11, 59, 30, 250000, tzinfo=timezone.utc)

    state = store.save(token, exported_time_series_count=3, exported_point_count=1200)

    assert store.load() == token
    loaded = store.load_state()
    assert loaded.exported_time_series_count == 3
    assert loaded.exported_point_count == 1200
    assert loaded.saved_at == state.saved_at


@given(
    st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1)),
    st.sampled_from([timedelta(0), timedelta(hours=-8), timedelta(hours=5, minutes=30)]),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_tokens_round_trip_as_the_same_instant(tmp_path, naive: datetime, offset: timedelta):
    log.info("test_tokens_round_trip_as_the_same_instant", offset=str(offset))

    store = ChangeCursorStore(tmp_path / "sync_state.json")
    token = naive.replace(tzinfo=timezone(offset))

    store.save(token)

    assert store.load() == token


def test_save_replaces_previous_token_without_leftovers(tmp_path):
    state_file = tmp_path / "sync_state.json"
    store = ChangeCursorStore(state_file)

    store.save(datetime(2024, 6, 1, tzinfo=timezone.utc))
    store.save(datetime(2024, 6, 2, tzinfo=timezone.utc))

    assert store.load() == datetime(2024, 6, 2, tzinfo=timezone.utc)
    assert [p.name for p in tmp_path.iterdir()] == ["sync_state.json"]
    assert json.loads(state_file.read_text())["changes_since_token"].startswith("2024-06-02")


def test_corrupt_state_file_raises(tmp_path):
    state_file = tmp_path / "sync_state.json"
    state_file.write_text("{not json")

    with pytest.raises(RuntimeError, match="Failed to load sync state"):
        ChangeCursorStore(state_file).load()


def test_unwritable_location_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = ChangeCursorStore(blocker / "sync_state.json")

    with pytest.raises(RuntimeError, match="Failed to save sync state"):
        store.save(datetime(2024, 6, 1, tzinfo=timezone.utc))


def test_max_token_lifetime_is_configurable(tmp_path):
    assert ChangeCursorStore(tmp_path / "a.json").max_token_lifetime() == timedelta(hours=48)
    assert ChangeCursorStore(
        tmp_path / "b.json", token_lifetime=timedelta(hours=12)
    ).max_token_lifetime() == timedelta(hours=12)
