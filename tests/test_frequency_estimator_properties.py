"""Property-based tests for sampling frequency inference."""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st

from src.models.timeseries import SamplingPeriod, TimeSeriesPoint
from src.processing.frequency_estimator import FrequencyEstimator

log = structlog.stdlib.get_logger()

START = datetime(2024, 1, 1, tzinfo=timezone.utc)

ORDERED_PERIODS = [
    SamplingPeriod.SUB_MINUTE,
    SamplingPeriod.MINUTES,
    SamplingPeriod.QUARTER_HOURLY,
    SamplingPeriod.HOURLY,
    SamplingPeriod.DAILY,
    SamplingPeriod.WEEKLY,
    SamplingPeriod.MONTHLY,
    SamplingPeriod.ANNUAL,
]


def regular_points(step: timedelta, count: int = 20) -> list[TimeSeriesPoint]:
    return [TimeSeriesPoint(timestamp=START + i * step, value=1.0) for i in range(count)]


@pytest.mark.parametrize(
    "step, expected",
    [
        (timedelta(seconds=1), SamplingPeriod.SUB_MINUTE),
        (timedelta(minutes=5), SamplingPeriod.MINUTES),
        (timedelta(minutes=15), SamplingPeriod.QUARTER_HOURLY),
        (timedelta(hours=1), SamplingPeriod.HOURLY),
        (timedelta(days=1), SamplingPeriod.DAILY),
        (timedelta(days=7), SamplingPeriod.WEEKLY),
        (timedelta(days=30), SamplingPeriod.MONTHLY),
        (timedelta(days=365), SamplingPeriod.ANNUAL),
    ],
)
def test_regular_signals_are_classified(step: timedelta, expected: SamplingPeriod):
    assert FrequencyEstimator().infer_period(regular_points(step)) is expected


def test_too_few_points_is_unknown():
    estimator = FrequencyEstimator()

    assert estimator.infer_period(regular_points(timedelta(minutes=15), count=2)) is (
        SamplingPeriod.UNKNOWN
    )
    assert estimator.infer_period([]) is SamplingPeriod.UNKNOWN


def test_identical_timestamps_are_unknown():
    points = [TimeSeriesPoint(timestamp=START, value=float(i)) for i in range(20)]

    assert FrequencyEstimator().infer_period(points) is SamplingPeriod.UNKNOWN


def test_boundaries_belong_to_the_coarser_period():
    estimator = FrequencyEstimator()

    assert estimator.classify_gap(59.9) is SamplingPeriod.SUB_MINUTE
    assert estimator.classify_gap(60.0) is SamplingPeriod.MINUTES


def test_minimum_point_count_is_configurable():
    estimator = FrequencyEstimator(minimum_point_count=3)

    assert estimator.has_enough_points(regular_points(timedelta(hours=1), count=3))
    assert estimator.infer_period(regular_points(timedelta(hours=1), count=3)) is (
        SamplingPeriod.HOURLY
    )


@given(st.floats(min_value=0.001, max_value=1e9), st.floats(min_value=0.001, max_value=1e9))
def test_classification_is_monotonic(a: float, b: float):
    """A longer typical gap never maps to a finer period."""
    estimator = FrequencyEstimator()
    smaller, larger = sorted((a, b))

    assert ORDERED_PERIODS.index(estimator.classify_gap(smaller)) <= ORDERED_PERIODS.index(
        estimator.classify_gap(larger)
    )


@given(st.sets(st.integers(min_value=1, max_value=98), max_size=10))
def test_missing_points_do_not_change_classification(missing: set[int]):
    """Dropping a few points from an hourly signal keeps it hourly."""
    log.info("test_missing_points_do_not_change_classification", missing=len(missing))

    points = [p for i, p in enumerate(regular_points(timedelta(hours=1), 100)) if i not in missing]

    assert FrequencyEstimator().infer_period(points) is SamplingPeriod.HOURLY
