"""Data models for the time-series exporter."""

from src.models.config import (
    AppConfig,
    ApprovalFilter,
    ComparisonType,
    CursorConfig,
    ExportConfig,
    GradeFilter,
    LoggingConfig,
    QualifierFilter,
    SourceConfig,
    TimeSeriesFilter,
)
from src.models.timeseries import (
    BEGINNING_OF_TIME,
    ChangeEvent,
    ChangeQuery,
    ChangeQueryResponse,
    ExtendedAttributeFilter,
    FetchedSlice,
    InsertedSensor,
    LocationInfo,
    MetadataItem,
    SamplingPeriod,
    SensorInfo,
    TimeSeriesDescription,
    TimeSeriesPoint,
    parse_instant,
)

__all__ = [
    "AppConfig",
    "ApprovalFilter",
    "BEGINNING_OF_TIME",
    "ChangeEvent",
    "ChangeQuery",
    "ChangeQueryResponse",
    "ComparisonType",
    "CursorConfig",
    "ExportConfig",
    "ExtendedAttributeFilter",
    "FetchedSlice",
    "GradeFilter",
    "InsertedSensor",
    "LocationInfo",
    "LoggingConfig",
    "MetadataItem",
    "QualifierFilter",
    "SamplingPeriod",
    "SensorInfo",
    "SourceConfig",
    "TimeSeriesDescription",
    "TimeSeriesFilter",
    "TimeSeriesPoint",
    "parse_instant",
]
