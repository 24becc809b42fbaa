"""Retention trimming of fetched points before export."""

from datetime import timedelta

import structlog

from src.models.timeseries import FetchedSlice, SamplingPeriod, subtract_clamped

log = structlog.stdlib.get_logger()

# Heuristic only: used to cap exported volume when frequency is mis-inferred
ROUGH_DAILY_POINT_COUNT: dict[SamplingPeriod, float] = {
    SamplingPeriod.ANNUAL: 1.0 / 365,
    SamplingPeriod.MONTHLY: 1.0 / 30,
    SamplingPeriod.WEEKLY: 1.0 / 7,
    SamplingPeriod.DAILY: 1.0,
    SamplingPeriod.HOURLY: 24,
    SamplingPeriod.QUARTER_HOURLY: 24 * 4,
    SamplingPeriod.MINUTES: 24 * 60,
    SamplingPeriod.SUB_MINUTE: 24 * 60 * 6,
}

POINT_LIMIT_SLACK: float = 1.5


class PointWindowTrimmer:
    """Bounds how much history of a slice is kept for export."""

    def __init__(self, maximum_point_days: dict[SamplingPeriod, int]):
        """
        Initialize trimmer.

        Args:
            maximum_point_days: Days of history to keep per period; a missing
                                or non-positive entry keeps everything
        """
        self._maximum_point_days = maximum_point_days

    def maximum_days(self, period: SamplingPeriod) -> int:
        return self._maximum_point_days.get(period, 0)

    def trim(self, time_series: FetchedSlice, period: SamplingPeriod) -> FetchedSlice:
        """
        Drop points older than the retention window of the given period.

        The window ends at the last point. The surviving point count is further
        capped at maximum days * expected daily points * 1.5, dropping the
        oldest points beyond the cap.

        Args:
            time_series: Ascending slice to trim
            period: Declared or inferred sampling period

        Returns:
            The trimmed slice (the input itself when nothing is trimmed)
        """
        maximum_days = self.maximum_days(period)

        if maximum_days <= 0 or not time_series.points:
            return time_series

        earliest_kept = subtract_clamped(
            time_series.points[-1].timestamp, timedelta(days=maximum_days)
        )

        remaining = [p for p in time_series.points if p.timestamp >= earliest_kept]

        expected_daily_count = ROUGH_DAILY_POINT_COUNT.get(period, 1.0)
        rough_point_limit = max(
            1, int(round(maximum_days * expected_daily_count * POINT_LIMIT_SLACK))
        )

        if len(remaining) > rough_point_limit:
            limit_exceeded_count = len(remaining) - rough_point_limit

            log.warning(
                "point_limit_exceeded",
                identifier=time_series.identifier,
                point_limit=rough_point_limit,
                exceeded_by=limit_exceeded_count,
                period=period.value,
                maximum_point_days=maximum_days,
            )

            remaining = remaining[limit_exceeded_count:]

        trimmed_count = time_series.num_points - len(remaining)

        if trimmed_count == 0:
            return time_series

        log.info(
            "trimming_points",
            identifier=time_series.identifier,
            trimmed_count=trimmed_count,
            earliest_kept=earliest_kept.isoformat(),
            remaining_count=len(remaining),
            period=period.value,
        )

        return time_series.with_points(remaining)
