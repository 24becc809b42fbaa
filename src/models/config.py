"""Configuration models for the time-series exporter."""

import re
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.timeseries import ExtendedAttributeFilter, SamplingPeriod


def _default_maximum_point_days() -> dict[SamplingPeriod, int]:
    return {
        SamplingPeriod.UNKNOWN: 300,
        SamplingPeriod.ANNUAL: -1,
        SamplingPeriod.MONTHLY: -1,
        SamplingPeriod.WEEKLY: -1,
        SamplingPeriod.DAILY: 3650,
        SamplingPeriod.HOURLY: 300,
        SamplingPeriod.QUARTER_HOURLY: 90,
        SamplingPeriod.MINUTES: 30,
        SamplingPeriod.SUB_MINUTE: 7,
    }


class ComparisonType(str, Enum):
    """Comparison applied between a point attribute and a filter value."""

    LESS_THAN = "<"
    LESS_THAN_EQUAL = "<="
    EQUAL = "=="
    GREATER_THAN_EQUAL = ">="
    GREATER_THAN = ">"

    def compare(self, actual: int, expected: int) -> bool:
        if self is ComparisonType.LESS_THAN:
            return actual < expected
        if self is ComparisonType.LESS_THAN_EQUAL:
            return actual <= expected
        if self is ComparisonType.GREATER_THAN_EQUAL:
            return actual >= expected
        if self is ComparisonType.GREATER_THAN:
            return actual > expected
        return actual == expected


class TimeSeriesFilter(BaseModel):
    """Regular expression matched against a time-series identifier or description."""

    pattern: str = Field(default=..., description="Regular expression (search semantics)")
    exclude: bool = Field(default=False, description="Exclude matches instead of including")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Reject patterns that do not compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression '{v}': {e}") from e
        return v

    @property
    def regex(self) -> re.Pattern[str]:
        return re.compile(self.pattern)


class ApprovalFilter(BaseModel):
    """Point filter on approval level, resolved against the source approval list."""

    text: str = Field(default=..., description="Approval display name or identifier")
    comparison: ComparisonType = Field(default=ComparisonType.EQUAL)
    exclude: bool = Field(default=False)
    approval_level: int | None = Field(
        default=None, description="Resolved approval level (filled in by validation)"
    )


class GradeFilter(BaseModel):
    """Point filter on grade code, resolved against the source grade list."""

    text: str = Field(default=..., description="Grade display name or identifier")
    comparison: ComparisonType = Field(default=ComparisonType.EQUAL)
    exclude: bool = Field(default=False)
    grade_code: int | None = Field(
        default=None, description="Resolved grade code (filled in by validation)"
    )


class QualifierFilter(BaseModel):
    """Point filter on qualifiers, resolved against the source qualifier list."""

    text: str = Field(default=..., description="Qualifier identifier or code")
    exclude: bool = Field(default=False)


class SourceConfig(BaseModel):
    """Configuration for the source data platform connection."""

    base_url: HttpUrl = Field(default=..., description="Publish API base URL")
    session_token: str = Field(default=..., description="Authenticated session token")
    timeout_seconds: float = Field(default=300.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries for transient failures")


class ExportConfig(BaseModel):
    """Configuration for what is exported and how much history is kept."""

    location_identifier: str | None = Field(default=None)
    parameter: str | None = Field(default=None)
    publish: bool | None = Field(default=None)
    change_event_type: str | None = Field(default=None)
    computation_identifier: str | None = Field(default=None)
    computation_period_identifier: str | None = Field(default=None)
    extended_filters: list[ExtendedAttributeFilter] = Field(default_factory=list)

    time_series: list[TimeSeriesFilter] = Field(
        default_factory=list, description="Filters matched against time-series identifiers"
    )
    time_series_descriptions: list[TimeSeriesFilter] = Field(
        default_factory=list, description="Filters matched against time-series descriptions"
    )
    approvals: list[ApprovalFilter] = Field(default_factory=list)
    grades: list[GradeFilter] = Field(default_factory=list)
    qualifiers: list[QualifierFilter] = Field(default_factory=list)

    maximum_point_days: dict[SamplingPeriod, int] = Field(
        default_factory=_default_maximum_point_days,
        description="Days of history to export per sampling period (<= 0 keeps everything)",
    )
    maximum_export_duration: timedelta | None = Field(
        default=None, description="Re-poll interval, defaults to token lifetime minus one hour"
    )
    changes_since: datetime | None = Field(
        default=None, description="Overrides the persisted change token"
    )
    force_resync: bool = Field(default=False, description="Ignore the persisted change token")
    never_resync: bool = Field(default=False, description="Skip the pass on token expiry")
    apply_rounding: bool = Field(default=False)
    dry_run: bool = Field(default=False, description="Log destination changes without applying")

    @field_validator("maximum_point_days")
    @classmethod
    def fill_missing_periods(cls, v: dict[SamplingPeriod, int]) -> dict[SamplingPeriod, int]:
        """Overlay configured periods on the defaults; WaterYear shares Annual's entry."""
        merged = _default_maximum_point_days()
        merged.update(v)
        merged.pop(SamplingPeriod.WATER_YEAR, None)
        return merged


class CursorConfig(BaseModel):
    """Configuration for change cursor persistence."""

    state_file: str = Field(default="./data/sync_state.json", description="Cursor state file")
    token_lifetime_hours: float = Field(
        default=48.0, gt=1.0, description="How long the source honours a change token"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    source: SourceConfig
    export: ExportConfig = Field(default_factory=ExportConfig)
    cursor: CursorConfig = Field(default_factory=CursorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
