"""Widening-window retrieval of the most recent points of a time-series."""

from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog
from pydantic import BaseModel, Field

from src.ingestion.source_client import SourceClientInterface
from src.models.timeseries import (
    FetchedSlice,
    SamplingPeriod,
    TimeSeriesDescription,
    subtract_clamped,
)
from src.processing.frequency_estimator import FrequencyEstimator
from src.utils.errors import NoDataError

log = structlog.stdlib.get_logger()

# Successive lookback widths; None requests everything from the true start of the series
PERIODS_TO_FETCH: list[timedelta | None] = (
    [timedelta(days=90)] * 3
    + [timedelta(days=365)] * 4
    + [timedelta(days=5 * 365)] * 4
    + [None]
)

INITIAL_LOOKBACK = timedelta(days=90)


class PointDataRequest(BaseModel):
    """Mutable point request shared by the retrieval steps of one series."""

    unique_id: str = Field(default=...)
    query_from: datetime | None = Field(default=None, description="None for all history")
    apply_rounding: bool = Field(default=False)


def retrieved_duration(time_series: FetchedSlice, request: PointDataRequest) -> timedelta:
    """Span of history covered by a slice fetched with request."""
    if request.query_from is None:
        return timedelta.max

    if not time_series.points:
        return timedelta.min

    return time_series.points[-1].timestamp - request.query_from


def maximum_retrieval_duration(maximum_days: int) -> timedelta:
    return timedelta(days=maximum_days) if maximum_days > 0 else timedelta.max


class RecentSignalFetcher:
    """Fetches just enough recent history to satisfy a completion predicate.

    Retrieval walks backwards from the request's query_from in widening
    windows and stops at the first response that satisfies the predicate,
    reaches the recorded start of the series, or covers all history.
    """

    def __init__(
        self,
        source: SourceClientInterface,
        estimator: FrequencyEstimator,
        maximum_point_days: dict[SamplingPeriod, int],
        clock: Callable[[], datetime] | None = None,
    ):
        self._source = source
        self._estimator = estimator
        self._maximum_point_days = maximum_point_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.request_count = 0

    def _maximum_days(self, period: SamplingPeriod) -> int:
        return self._maximum_point_days.get(period, 0)

    def start_of_today(self, description: TimeSeriesDescription) -> datetime:
        """Midnight of the current day in the series' own UTC offset."""
        offset = timezone(description.utc_offset)
        local_now = self._clock().astimezone(offset)
        return datetime(local_now.year, local_now.month, local_now.day, tzinfo=offset)

    def fetch_recent_signal(
        self,
        description: TimeSeriesDescription,
        request: PointDataRequest,
        period: SamplingPeriod,
    ) -> tuple[FetchedSlice, SamplingPeriod]:
        """
        Fetch enough recent points to cover the retention window of the series.

        When the period is unknown, points are first fetched until the
        frequency can be inferred, and the retention window of the inferred
        period then decides whether more history is needed.

        Args:
            description: Series being exported
            request: Point request; query_from is updated as retrieval widens
            period: Declared sampling period, possibly UNKNOWN

        Returns:
            Tuple of (fetched slice, declared or inferred period)

        Raises:
            NoDataError: If no points exist even after fetching all history
        """
        if request.query_from is None:
            request.query_from = self.start_of_today(description) - INITIAL_LOOKBACK

        if period is SamplingPeriod.UNKNOWN:
            time_series = self.fetch_until(
                description,
                request,
                lambda ts: self._estimator.has_enough_points(ts.points),
                "to determine signal frequency",
            )

            period = self._estimator.infer_period(time_series.points)

            if request.query_from is None:
                # Everything has been fetched already
                return time_series, period

            required = maximum_retrieval_duration(self._maximum_days(period))
            if retrieved_duration(time_series, request) >= required:
                return time_series, period

        required = maximum_retrieval_duration(self._maximum_days(period))

        time_series = self.fetch_until(
            description,
            request,
            lambda ts: retrieved_duration(ts, request) >= required,
            f"with Frequency={period.value}",
        )

        return time_series, period

    def fetch_until(
        self,
        description: TimeSeriesDescription,
        request: PointDataRequest,
        is_fetch_complete: Callable[[FetchedSlice], bool],
        progress_message: str,
    ) -> FetchedSlice:
        """
        Widen the lookback window until is_fetch_complete accepts a response.

        Args:
            description: Series being fetched
            request: Point request whose query_from is moved backwards in place
            is_fetch_complete: Predicate deciding when enough data is present
            progress_message: Context for log events

        Returns:
            The last fetched slice

        Raises:
            NoDataError: If history is exhausted without retrieving any point
        """
        if (
            description.raw_end_time is not None
            and request.query_from is not None
            and description.raw_end_time < request.query_from
        ):
            request.query_from = description.raw_end_time

        time_series: FetchedSlice | None = None

        for span in PERIODS_TO_FETCH:
            if span is None:
                request.query_from = None

            log.info(
                "fetching_recent_points",
                identifier=description.identifier,
                query_from=request.query_from,
                purpose=progress_message,
            )

            time_series = self._source.get_time_series_data(
                request.unique_id, request.query_from, request.apply_rounding
            )
            self.request_count += 1

            if span is None or request.query_from is None:
                break

            raw_start_time = description.raw_start_time
            if raw_start_time is not None and raw_start_time > request.query_from:
                break

            if is_fetch_complete(time_series):
                break

            request.query_from = subtract_clamped(request.query_from, span)

        if time_series is None or not time_series.points:
            raise NoDataError(
                f"Logic error: Can't fetch time-series data of '{description.identifier}' "
                f"{progress_message}"
            )

        return time_series
