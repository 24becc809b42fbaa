"""Property-based tests for change event merging."""

from datetime import datetime, timezone

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from src.models.timeseries import BEGINNING_OF_TIME, ChangeEvent
from src.sync.change_merger import ChangeSetMerger, merge_change_events

log = structlog.stdlib.get_logger()

MARCH = datetime(2024, 3, 1, tzinfo=timezone.utc)

instants = st.one_of(
    st.none(),
    st.just(BEGINNING_OF_TIME),
    st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2030, 1, 1)).map(
        lambda d: d.replace(tzinfo=timezone.utc)
    ),
)


@st.composite
def change_events(draw: st.DrawFn, unique_id: str = "ts-1") -> ChangeEvent:
    return ChangeEvent(
        unique_id=unique_id,
        first_point_changed=draw(instants),
        has_attribute_change=draw(st.one_of(st.none(), st.booleans())),
    )


@given(change_events(), change_events())
@settings(max_examples=200)
def test_merge_is_commutative(a: ChangeEvent, b: ChangeEvent):
    assert merge_change_events(a, b) == merge_change_events(b, a)


@given(change_events(), change_events(), change_events())
def test_merge_is_associative(a: ChangeEvent, b: ChangeEvent, c: ChangeEvent):
    left = merge_change_events(merge_change_events(a, b), c)
    right = merge_change_events(a, merge_change_events(b, c))

    assert left == right


@given(change_events())
def test_merge_is_idempotent(a: ChangeEvent):
    assert merge_change_events(a, a) == a


@given(change_events(), change_events())
@settings(max_examples=200)
def test_merge_widens_the_changed_window(a: ChangeEvent, b: ChangeEvent):
    """The merged first changed point is the earliest known one."""
    log.info("test_merge_widens_the_changed_window")

    merged = merge_change_events(a, b)
    known = [e.first_point_changed for e in (a, b) if e.first_point_changed is not None]

    if known:
        assert merged.first_point_changed == min(known)
    else:
        assert merged.first_point_changed is None

    flags = [e.has_attribute_change for e in (a, b) if e.has_attribute_change is not None]
    if flags:
        assert merged.has_attribute_change is any(flags)
    else:
        assert merged.has_attribute_change is None


def test_sentinel_survives_merging():
    full = ChangeEvent(unique_id="ts-1", first_point_changed=BEGINNING_OF_TIME)
    partial = ChangeEvent(
        unique_id="ts-1", first_point_changed=datetime(2024, 1, 1, tzinfo=timezone.utc)
    )

    assert merge_change_events(partial, full).is_full_rederivation


def test_merge_rejects_different_series():
    with pytest.raises(ValueError, match="different series"):
        merge_change_events(ChangeEvent(unique_id="a"), ChangeEvent(unique_id="b"))


class TestChangeSetMerger:
    """Pending series merge, exported or unknown series are scheduled again."""

    def test_pending_events_are_merged(self) -> None:
        merger = ChangeSetMerger([ChangeEvent(unique_id="a", first_point_changed=MARCH)])

        scheduled = merger.add(
            ChangeEvent(
                unique_id="a",
                first_point_changed=datetime(2024, 2, 1, tzinfo=timezone.utc),
                has_attribute_change=True,
            )
        )

        assert scheduled is False
        assert len(merger) == 1
        assert merger.event_for("a").first_point_changed == datetime(
            2024, 2, 1, tzinfo=timezone.utc
        )
        assert merger.event_for("a").has_attribute_change is True

    def test_exported_events_are_rescheduled(self) -> None:
        merger = ChangeSetMerger([ChangeEvent(unique_id="a", first_point_changed=MARCH)])
        merger.mark_exported("a")

        later = ChangeEvent(
            unique_id="a", first_point_changed=datetime(2024, 4, 1, tzinfo=timezone.utc)
        )

        assert merger.add(later) is True
        assert merger.is_pending("a")
        # The re-queued export starts from the new event only
        assert merger.event_for("a") == later

    def test_new_series_are_scheduled(self) -> None:
        merger = ChangeSetMerger([ChangeEvent(unique_id="a")])

        scheduled = merger.merge_all(
            [ChangeEvent(unique_id="b"), ChangeEvent(unique_id="a"), ChangeEvent(unique_id="c")]
        )

        assert [e.unique_id for e in scheduled] == ["b", "c"]
        assert merger.pending_count == 3
        assert "c" in merger

    @given(st.lists(st.sampled_from(["a", "b", "c"]), max_size=20))
    def test_duplicate_initial_events_collapse(self, unique_ids: list[str]) -> None:
        merger = ChangeSetMerger(ChangeEvent(unique_id=uid) for uid in unique_ids)

        assert len(merger) == len(set(unique_ids))
        assert merger.pending_count == len(set(unique_ids))
