"""Shared fixtures: in-memory source platform and destination store."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from src.ingestion.source_client import SourceClientInterface
from src.models.timeseries import (
    ChangeQuery,
    ChangeQueryResponse,
    FetchedSlice,
    InsertedSensor,
    MetadataItem,
    SensorInfo,
    TimeSeriesDescription,
    TimeSeriesPoint,
)
from src.storage.observation_store import ObservationStoreInterface

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_points(
    start: datetime, count: int, step: timedelta, **attributes: Any
) -> list[TimeSeriesPoint]:
    """Evenly spaced ascending points."""
    return [
        TimeSeriesPoint(timestamp=start + i * step, value=float(i), **attributes)
        for i in range(count)
    ]


class FakeSourceClient(SourceClientInterface):
    """In-memory source platform.

    Change responses are served in order; once exhausted, an empty response
    carrying the last issued token is returned.
    """

    def __init__(self) -> None:
        self.change_responses: list[ChangeQueryResponse] = []
        self.change_queries: list[ChangeQuery] = []
        self.descriptions: dict[str, TimeSeriesDescription] = {}
        self.points: dict[str, list[TimeSeriesPoint]] = {}
        self.data_requests: list[tuple[str, datetime | None]] = []
        self.description_batches: list[list[str]] = []
        self.locations: dict[str, dict[str, Any]] = {}
        self.location_data_requests: list[str] = []
        self.approvals: list[MetadataItem] = []
        self.grades: list[MetadataItem] = []
        self.qualifiers: list[MetadataItem] = []
        self.fail_data_for: set[str] = set()
        self._last_token: datetime | None = None

    def add_series(
        self,
        unique_id: str,
        identifier: str,
        points: list[TimeSeriesPoint],
        location_identifier: str = "Loc1",
        period: str | None = "Daily",
        **fields: Any,
    ) -> TimeSeriesDescription:
        description = TimeSeriesDescription(
            unique_id=unique_id,
            identifier=identifier,
            location_identifier=location_identifier,
            computation_period_identifier=period,
            raw_start_time=points[0].timestamp if points else None,
            raw_end_time=points[-1].timestamp if points else None,
            **fields,
        )
        self.descriptions[unique_id] = description
        self.points[unique_id] = list(points)
        self.locations.setdefault(
            location_identifier,
            {"Identifier": location_identifier, "Name": f"Location {location_identifier}"},
        )
        return description

    def requests_for(self, unique_id: str) -> list[datetime | None]:
        return [query_from for uid, query_from in self.data_requests if uid == unique_id]

    def get_time_series_changes(self, query: ChangeQuery) -> ChangeQueryResponse:
        self.change_queries.append(query.model_copy(deep=True))

        if self.change_responses:
            response = self.change_responses.pop(0)
        else:
            response = ChangeQueryResponse(
                next_token=self._last_token, token_expired=False, response_time=NOW
            )

        if response.next_token is not None:
            self._last_token = response.next_token

        return response

    def get_time_series_descriptions(self, unique_ids: list[str]) -> list[TimeSeriesDescription]:
        self.description_batches.append(list(unique_ids))
        return [self.descriptions[uid] for uid in unique_ids if uid in self.descriptions]

    def get_time_series_data(
        self,
        unique_id: str,
        query_from: datetime | None,
        apply_rounding: bool = False,
    ) -> FetchedSlice:
        self.data_requests.append((unique_id, query_from))

        if unique_id in self.fail_data_for:
            raise ConnectionError(f"connection reset while reading {unique_id}")

        points = [
            p
            for p in self.points.get(unique_id, [])
            if query_from is None or p.timestamp >= query_from
        ]
        description = self.descriptions.get(unique_id)

        return FetchedSlice(
            unique_id=unique_id,
            identifier=description.identifier if description else None,
            points=points,
            query_from=query_from,
        )

    def get_location_descriptions(self, location_identifier: str) -> list[dict[str, Any]]:
        location = self.locations.get(location_identifier)
        return [location] if location else []

    def get_location_data(self, location_identifier: str) -> dict[str, Any]:
        self.location_data_requests.append(location_identifier)
        return {"Identifier": location_identifier, "Latitude": 49.2, "Longitude": -123.1}

    def get_approvals(self) -> list[MetadataItem]:
        return self.approvals

    def get_grades(self) -> list[MetadataItem]:
        return self.grades

    def get_qualifiers(self) -> list[MetadataItem]:
        return self.qualifiers


class FakeObservationStore(ObservationStoreInterface):
    """In-memory destination recording every call in order.

    Sensors and observations are keyed by time-series unique ID.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.sensors: dict[str, SensorInfo] = {}
        self.observations: dict[str, list[TimeSeriesPoint]] = {}
        self.close_count = 0
        self.on_insert_observation: Callable[[FetchedSlice], None] | None = None

    def close(self) -> None:
        self.close_count += 1

    def mutating_calls(self) -> list[tuple[str, str | None]]:
        return [call for call in self.calls if call[0] != "find_existing_sensor"]

    def exported_ids(self) -> list[str | None]:
        return [uid for name, uid in self.calls if name == "insert_observation"]

    def find_existing_sensor(self, description: TimeSeriesDescription) -> SensorInfo | None:
        self.calls.append(("find_existing_sensor", description.unique_id))
        return self.sensors.get(description.unique_id)

    def delete_sensor(self, time_series: FetchedSlice) -> None:
        self.calls.append(("delete_sensor", time_series.unique_id))
        self.sensors.pop(time_series.unique_id, None)
        self.observations.pop(time_series.unique_id, None)

    def delete_deleted_observations(self) -> None:
        self.calls.append(("delete_deleted_observations", None))

    def insert_sensor(self, time_series: FetchedSlice) -> InsertedSensor:
        self.calls.append(("insert_sensor", time_series.unique_id))
        offering = f"offering-{time_series.unique_id}"
        self.sensors[time_series.unique_id] = SensorInfo(identifier=offering)
        return InsertedSensor(assigned_offering=offering)

    def insert_observation(
        self,
        assigned_offering: str,
        location_data: dict[str, Any],
        location_description: dict[str, Any],
        time_series: FetchedSlice,
        description: TimeSeriesDescription,
    ) -> None:
        self.calls.append(("insert_observation", time_series.unique_id))
        assert assigned_offering == f"offering-{time_series.unique_id}"

        points = self.observations.setdefault(time_series.unique_id, [])
        points.extend(time_series.points)
        if points:
            self.sensors[time_series.unique_id] = SensorInfo(
                identifier=assigned_offering,
                phenomenon_times=[points[0].timestamp, points[-1].timestamp],
            )

        if self.on_insert_observation is not None:
            self.on_insert_observation(time_series)

    def clear_datasource(self) -> None:
        self.calls.append(("clear_datasource", None))
        self.sensors.clear()
        self.observations.clear()


class FakeMonotonic:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def source() -> FakeSourceClient:
    return FakeSourceClient()


@pytest.fixture
def store() -> FakeObservationStore:
    return FakeObservationStore()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()
