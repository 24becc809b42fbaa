"""Tests for time-series models and timestamp helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from src.models.timeseries import (
    BEGINNING_OF_TIME,
    END_OF_TIME,
    ChangeQuery,
    ExtendedAttributeFilter,
    FetchedSlice,
    SamplingPeriod,
    TimeSeriesPoint,
    parse_instant,
    subtract_clamped,
)

START = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestParseInstant:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("0001-01-01T00:00:00.0000000Z", BEGINNING_OF_TIME),
            ("0001-01-01T00:00:00Z", BEGINNING_OF_TIME),
            ("9999-12-31T23:59:59.9999999Z", END_OF_TIME),
            ("2024-06-01T00:00:00Z", START),
            ("2024-06-01T00:00:00.1234567Z", START.replace(microsecond=123456)),
            ("2024-05-31T16:00:00-08:00", START),
            ("2024-06-01T00:00:00", START),
        ],
    )
    def test_wire_formats(self, text: str, expected: datetime) -> None:
        assert parse_instant(text) == expected

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_values(self, value) -> None:
        assert parse_instant(value) is None

    def test_naive_datetimes_are_utc(self) -> None:
        assert parse_instant(datetime(2024, 6, 1)).tzinfo == timezone.utc

    def test_offset_is_preserved(self) -> None:
        parsed = parse_instant("2024-05-31T16:00:00-08:00")

        assert parsed.utcoffset() == timedelta(hours=-8)


@given(st.timedeltas(min_value=timedelta(0), max_value=timedelta(days=1_000_000)))
def test_subtract_clamped_never_underflows(span: timedelta):
    result = subtract_clamped(START, span)

    if span >= START - BEGINNING_OF_TIME:
        assert result == BEGINNING_OF_TIME
    else:
        assert result == START - span


def test_subtract_clamped_from_the_minimum_instant():
    assert subtract_clamped(BEGINNING_OF_TIME, timedelta(days=90)) == BEGINNING_OF_TIME


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("Daily", SamplingPeriod.DAILY),
        ("quarterhourly", SamplingPeriod.QUARTER_HOURLY),
        (" Hourly ", SamplingPeriod.HOURLY),
        ("WaterYear", SamplingPeriod.ANNUAL),
        ("Points", SamplingPeriod.UNKNOWN),
        ("", SamplingPeriod.UNKNOWN),
        (None, SamplingPeriod.UNKNOWN),
    ],
)
def test_sampling_period_parse(identifier, expected):
    assert SamplingPeriod.parse(identifier) is expected


class TestFetchedSlice:
    def test_points_must_ascend(self) -> None:
        with pytest.raises(ValidationError, match="ascending"):
            FetchedSlice(
                unique_id="a",
                points=[
                    TimeSeriesPoint(timestamp=START + timedelta(hours=1)),
                    TimeSeriesPoint(timestamp=START),
                ],
            )

    def test_equal_timestamps_are_allowed(self) -> None:
        time_series = FetchedSlice(
            unique_id="a",
            points=[TimeSeriesPoint(timestamp=START), TimeSeriesPoint(timestamp=START)],
        )

        assert time_series.num_points == 2

    def test_empty_slice_has_no_bounds(self) -> None:
        time_series = FetchedSlice(unique_id="a")

        assert time_series.first_timestamp is None
        assert time_series.last_timestamp is None

    def test_with_points_keeps_identity(self) -> None:
        time_series = FetchedSlice(unique_id="a", identifier="Stage@Loc1", query_from=START)

        replaced = time_series.with_points([TimeSeriesPoint(timestamp=START, value=1.0)])

        assert replaced.identifier == "Stage@Loc1"
        assert replaced.query_from == START
        assert replaced.num_points == 1
        assert time_series.num_points == 0


class TestChangeQuerySummary:
    def test_unfiltered(self) -> None:
        assert ChangeQuery().summary() == "all locations for time-series"

    def test_all_filters(self) -> None:
        query = ChangeQuery(
            changes_since_token=START,
            location_identifier="Loc1",
            publish=True,
            parameter="Stage",
            extended_filters=[ExtendedAttributeFilter(filter_name="Region", filter_value="North")],
        )

        assert query.summary() == (
            "location 'Loc1' with Publish=True and Parameter=Stage and "
            "ExtendedFilters=Region=North for time-series change since "
            "2024-06-01T00:00:00+00:00"
        )
