"""Pydantic models for time-series metadata, points and change events."""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Sentinel reported as FirstPointChanged when a derived series is fully re-computed
BEGINNING_OF_TIME: datetime = datetime.min.replace(tzinfo=timezone.utc)
END_OF_TIME: datetime = datetime.max.replace(tzinfo=timezone.utc)

_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_instant(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 wire timestamp into an aware UTC datetime.

    The source emits up to seven fractional digits and the .NET minimum and
    maximum instants. Both extremes map onto the module-level sentinels so
    that equality comparisons against BEGINNING_OF_TIME are reliable.

    Args:
        value: ISO 8601 string, datetime, or None

    Returns:
        Aware datetime, or None when value is None or empty
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = _FRACTION_PATTERN.sub(r"\1", value.strip().replace("Z", "+00:00"))
        if text.startswith("0001-01-01"):
            return BEGINNING_OF_TIME
        if text.startswith("9999-12-31"):
            return END_OF_TIME
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    if parsed == BEGINNING_OF_TIME:
        return BEGINNING_OF_TIME

    return parsed


def subtract_clamped(instant: datetime, span: timedelta) -> datetime:
    """Subtract a span from an instant without underflowing the minimum instant."""
    if instant - BEGINNING_OF_TIME <= span:
        return BEGINNING_OF_TIME
    return instant - span


class SamplingPeriod(str, Enum):
    """Categorical cadence at which a time-series is recorded."""

    UNKNOWN = "Unknown"
    ANNUAL = "Annual"
    MONTHLY = "Monthly"
    WEEKLY = "Weekly"
    DAILY = "Daily"
    HOURLY = "Hourly"
    QUARTER_HOURLY = "QuarterHourly"
    MINUTES = "Minutes"
    SUB_MINUTE = "SubMinute"
    WATER_YEAR = "WaterYear"

    @classmethod
    def parse(cls, identifier: str | None) -> "SamplingPeriod":
        """Case-insensitive lookup of a computation period identifier.

        WaterYear has the same cadence as Annual and is folded into it.
        Unrecognised identifiers map to UNKNOWN.
        """
        if not identifier:
            return cls.UNKNOWN

        for period in cls:
            if period.value.lower() == identifier.strip().lower():
                return cls.ANNUAL if period is cls.WATER_YEAR else period

        return cls.UNKNOWN


class TimeSeriesPoint(BaseModel):
    """A single corrected point with its quality attributes."""

    timestamp: datetime = Field(default=..., description="Point timestamp")
    value: float | None = Field(default=None, description="Numeric value, None for gaps")
    grade_code: int | None = Field(default=None, description="Grade code covering the point")
    approval_level: int | None = Field(
        default=None, description="Approval level covering the point"
    )
    qualifiers: list[str] = Field(
        default_factory=list, description="Qualifier identifiers covering the point"
    )

    model_config = {"frozen": True}


class FetchedSlice(BaseModel):
    """Points retrieved from one time-series, sorted by ascending timestamp."""

    unique_id: str = Field(default=..., description="Time-series unique ID")
    identifier: str | None = Field(default=None, description="Time-series identifier")
    points: list[TimeSeriesPoint] = Field(default_factory=list, description="Ascending points")
    query_from: datetime | None = Field(
        default=None, description="Lower bound of the request, None for all history"
    )

    @field_validator("points")
    @classmethod
    def validate_points_ascending(cls, v: list[TimeSeriesPoint]) -> list[TimeSeriesPoint]:
        """Reject slices whose points are not in ascending timestamp order."""
        for previous, current in zip(v, v[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError("points must be sorted by ascending timestamp")
        return v

    @property
    def num_points(self) -> int:
        return len(self.points)

    @property
    def first_timestamp(self) -> datetime | None:
        return self.points[0].timestamp if self.points else None

    @property
    def last_timestamp(self) -> datetime | None:
        return self.points[-1].timestamp if self.points else None

    def with_points(self, points: list[TimeSeriesPoint]) -> "FetchedSlice":
        """Return a copy of this slice holding a different point list."""
        return self.model_copy(update={"points": list(points)})


class ChangeEvent(BaseModel):
    """Notification that a time-series changed since the last change token."""

    unique_id: str = Field(default=..., description="Time-series unique ID")
    first_point_changed: datetime | None = Field(
        default=None, description="Earliest changed point, BEGINNING_OF_TIME for re-derivations"
    )
    has_attribute_change: bool | None = Field(
        default=None, description="True when attributes changed, None when unknown"
    )

    @property
    def is_full_rederivation(self) -> bool:
        return self.first_point_changed == BEGINNING_OF_TIME


class ExtendedAttributeFilter(BaseModel):
    """Extended attribute name/value pair applied to change queries."""

    filter_name: str = Field(default=..., description="Extended attribute name")
    filter_value: str = Field(default=..., description="Extended attribute value")


class ChangeQuery(BaseModel):
    """Request for time-series changed since a token."""

    changes_since_token: datetime | None = Field(
        default=None, description="Opaque change cursor, None for everything"
    )
    location_identifier: str | None = Field(default=None)
    change_event_type: str | None = Field(default=None)
    publish: bool | None = Field(default=None)
    parameter: str | None = Field(default=None)
    computation_identifier: str | None = Field(default=None)
    computation_period_identifier: str | None = Field(default=None)
    extended_filters: list[ExtendedAttributeFilter] | None = Field(default=None)

    def summary(self) -> str:
        """Human-readable description of the query filters."""
        text = (
            f"location '{self.location_identifier}'"
            if self.location_identifier
            else "all locations"
        )

        filters = []
        if self.publish is not None:
            filters.append(f"Publish={self.publish}")
        if self.parameter:
            filters.append(f"Parameter={self.parameter}")
        if self.computation_identifier:
            filters.append(f"ComputationIdentifier={self.computation_identifier}")
        if self.computation_period_identifier:
            filters.append(f"ComputationPeriodIdentifier={self.computation_period_identifier}")
        if self.change_event_type:
            filters.append(f"ChangeEventType={self.change_event_type}")
        if self.extended_filters:
            pairs = ", ".join(f"{f.filter_name}={f.filter_value}" for f in self.extended_filters)
            filters.append(f"ExtendedFilters={pairs}")

        if filters:
            text += " with " + " and ".join(filters)

        text += " for time-series"

        if self.changes_since_token is not None:
            text += f" change since {self.changes_since_token.isoformat()}"

        return text


class ChangeQueryResponse(BaseModel):
    """Response to a ChangeQuery."""

    time_series_changes: list[ChangeEvent] = Field(default_factory=list)
    next_token: datetime | None = Field(default=None, description="Cursor for the next query")
    token_expired: bool | None = Field(
        default=None, description="True when the supplied token is too old"
    )
    response_time: datetime = Field(default=..., description="Server time of the response")


class TimeSeriesDescription(BaseModel):
    """Metadata describing one time-series, fetched fresh for every pass."""

    unique_id: str = Field(default=...)
    identifier: str = Field(default=..., description="e.g. Stage.Telemetry@Loc1")
    location_identifier: str = Field(default=...)
    description: str = Field(default="")
    parameter: str | None = Field(default=None)
    unit: str | None = Field(default=None)
    publish: bool | None = Field(default=None)
    computation_identifier: str | None = Field(default=None)
    computation_period_identifier: str | None = Field(default=None)
    raw_start_time: datetime | None = Field(default=None, description="None for empty series")
    raw_end_time: datetime | None = Field(default=None, description="None for empty series")
    utc_offset: timedelta = Field(default=timedelta(0), description="Series UTC offset")

    model_config = {"frozen": True}


class SensorInfo(BaseModel):
    """Destination-side registration of an exported time-series."""

    identifier: str = Field(default=..., description="Sensor/offering identifier")
    phenomenon_times: list[datetime] = Field(
        default_factory=list, description="Observed phenomenon time range"
    )

    @property
    def last_observation_time(self) -> datetime | None:
        return self.phenomenon_times[-1] if self.phenomenon_times else None


class InsertedSensor(BaseModel):
    """Result of registering a sensor at the destination."""

    assigned_offering: str = Field(default=...)


class LocationInfo(BaseModel):
    """Location description and data attached to every exported observation."""

    description: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, Any] = Field(default_factory=dict)


class MetadataItem(BaseModel):
    """Approval, grade or qualifier entry from the source metadata lists."""

    identifier: str = Field(default=...)
    display_name: str = Field(default="")
    code: str = Field(default="")
