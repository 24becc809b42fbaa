"""Sampling frequency inference from recently retrieved points."""

from bisect import bisect_right
from datetime import timedelta

import numpy as np
import structlog

from src.models.timeseries import SamplingPeriod, TimeSeriesPoint

log = structlog.stdlib.get_logger()


class FrequencyEstimator:
    """Infers a SamplingPeriod from the typical gap between consecutive points.

    The median gap is used so that a few missing points, or a burst of extra
    points, do not move the classification. Each category covers gaps up to
    (but excluding) the next boundary below.
    """

    MINIMUM_POINT_COUNT: int = 10

    _UPPER_BOUNDS: list[tuple[timedelta, SamplingPeriod]] = [
        (timedelta(minutes=1), SamplingPeriod.SUB_MINUTE),
        (timedelta(minutes=10), SamplingPeriod.MINUTES),
        (timedelta(minutes=30), SamplingPeriod.QUARTER_HOURLY),
        (timedelta(hours=6), SamplingPeriod.HOURLY),
        (timedelta(days=3, hours=12), SamplingPeriod.DAILY),
        (timedelta(days=15), SamplingPeriod.WEEKLY),
        (timedelta(days=180), SamplingPeriod.MONTHLY),
    ]

    def __init__(self, minimum_point_count: int | None = None):
        self.minimum_point_count = minimum_point_count or self.MINIMUM_POINT_COUNT
        self._bounds_seconds = [bound.total_seconds() for bound, _ in self._UPPER_BOUNDS]

    def has_enough_points(self, points: list[TimeSeriesPoint]) -> bool:
        return len(points) >= self.minimum_point_count

    def infer_period(self, points: list[TimeSeriesPoint]) -> SamplingPeriod:
        """
        Infer the sampling period of ascending points.

        Args:
            points: Recently retrieved points, ascending by timestamp

        Returns:
            The inferred period, or UNKNOWN when there are too few points or
            every point shares one timestamp
        """
        if not self.has_enough_points(points):
            log.debug(
                "too_few_points_to_infer_frequency",
                point_count=len(points),
                minimum_point_count=self.minimum_point_count,
            )
            return SamplingPeriod.UNKNOWN

        epoch_seconds = np.array([p.timestamp.timestamp() for p in points], dtype=np.float64)
        gaps = np.diff(epoch_seconds)
        gaps = gaps[gaps > 0]

        if gaps.size == 0:
            return SamplingPeriod.UNKNOWN

        median_gap = float(np.median(gaps))
        period = self.classify_gap(median_gap)

        log.debug(
            "frequency_inferred",
            point_count=len(points),
            median_gap_seconds=median_gap,
            period=period.value,
        )

        return period

    def classify_gap(self, gap_seconds: float) -> SamplingPeriod:
        """Map a typical gap (in seconds) onto a sampling period."""
        index = bisect_right(self._bounds_seconds, gap_seconds)

        if index >= len(self._UPPER_BOUNDS):
            return SamplingPeriod.ANNUAL

        return self._UPPER_BOUNDS[index][1]
