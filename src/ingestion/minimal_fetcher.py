"""Retrieval of the smallest sufficient slice of one changed time-series."""

from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.ingestion.recent_signal_fetcher import PointDataRequest, RecentSignalFetcher
from src.ingestion.source_client import SourceClientInterface
from src.models.timeseries import (
    BEGINNING_OF_TIME,
    ChangeEvent,
    FetchedSlice,
    SamplingPeriod,
    SensorInfo,
    TimeSeriesDescription,
)
from src.processing.frequency_estimator import FrequencyEstimator
from src.processing.point_trimmer import PointWindowTrimmer

log = structlog.stdlib.get_logger()


class FetchResult(BaseModel):
    """Outcome of a minimal fetch for one series."""

    time_series: FetchedSlice = Field(default=...)
    period: SamplingPeriod = Field(default=..., description="Declared or inferred period")
    delete_existing_sensor: bool = Field(
        default=False, description="True when the destination sensor must be recreated"
    )


def initial_query_from(change: ChangeEvent) -> datetime | None:
    """Lower bound implied by a change event.

    A re-derived series always reports the beginning of time as its first
    changed point. It is treated like an initial sync so retrieval walks
    backwards from today instead of pulling the whole signal.
    """
    if change.first_point_changed == BEGINNING_OF_TIME:
        return None
    return change.first_point_changed


def last_sensor_time(sensor: SensorInfo | None) -> datetime | None:
    return sensor.last_observation_time if sensor is not None else None


def history_changed(sensor: SensorInfo | None, change: ChangeEvent) -> bool:
    """True when the change reaches back into observations the destination already holds."""
    last_time = last_sensor_time(sensor)

    if last_time is None:
        return False

    if change.first_point_changed is None:
        # Unknown extent of change, so the existing observations cannot be trusted
        return True

    return last_time >= change.first_point_changed


class MinimalTimeSeriesFetcher:
    """Chooses and performs the cheapest retrieval that keeps the destination correct."""

    def __init__(
        self,
        source: SourceClientInterface,
        recent_signal_fetcher: RecentSignalFetcher,
        estimator: FrequencyEstimator,
        trimmer: PointWindowTrimmer,
        apply_rounding: bool = False,
    ):
        self._source = source
        self._recent_signal_fetcher = recent_signal_fetcher
        self._estimator = estimator
        self._trimmer = trimmer
        self._apply_rounding = apply_rounding

    def fetch(
        self,
        description: TimeSeriesDescription,
        change: ChangeEvent,
        existing_sensor: SensorInfo | None,
        period: SamplingPeriod,
        clear_exported_data: bool = False,
    ) -> FetchResult:
        """
        Fetch the points needed to bring the destination up to date.

        Args:
            description: Series being exported
            change: Detected change for the series
            existing_sensor: Destination sensor, or None when absent
            period: Declared sampling period, possibly UNKNOWN
            clear_exported_data: True when the destination is being rebuilt from scratch

        Returns:
            FetchResult with the trimmed slice, the period, and whether the
            existing sensor must be deleted first
        """
        request = PointDataRequest(
            unique_id=description.unique_id,
            query_from=initial_query_from(change),
            apply_rounding=self._apply_rounding,
        )

        delete_existing_sensor = clear_exported_data and existing_sensor is not None
        last_time = last_sensor_time(existing_sensor)

        if (
            not delete_existing_sensor
            and last_time is not None
            and request.query_from is not None
            and last_time < request.query_from
        ):
            # Every changed point is newer than the destination holds: only fetch those
            log.info(
                "fetching_changed_points",
                identifier=description.identifier,
                query_from=request.query_from,
            )

            time_series = self._source.get_time_series_data(
                request.unique_id, request.query_from, request.apply_rounding
            )

            if period is SamplingPeriod.UNKNOWN:
                period = self._estimator.infer_period(time_series.points)

            return FetchResult(
                time_series=self._trimmer.trim(time_series, period),
                period=period,
                delete_existing_sensor=False,
            )

        if history_changed(existing_sensor, change):
            # A point changed before the last exported observation: rebuild the sensor
            delete_existing_sensor = True
            request.query_from = None

        time_series, period = self._recent_signal_fetcher.fetch_recent_signal(
            description, request, period
        )

        return FetchResult(
            time_series=self._trimmer.trim(time_series, period),
            period=period,
            delete_existing_sensor=delete_existing_sensor,
        )
