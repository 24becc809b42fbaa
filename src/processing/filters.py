"""Include/exclude filtering of time-series descriptions and points."""

from typing import Callable, Generic, Iterable, Protocol, TypeVar

import structlog

from src.models.config import (
    ApprovalFilter,
    ExportConfig,
    GradeFilter,
    QualifierFilter,
    TimeSeriesFilter,
)
from src.models.timeseries import FetchedSlice, TimeSeriesDescription, TimeSeriesPoint

log = structlog.stdlib.get_logger()


class _Excludable(Protocol):
    exclude: bool


F = TypeVar("F", bound=_Excludable)


class Filter(Generic[F]):
    """A set of include and exclude filters sharing one match predicate.

    An item passes when it matches at least one include filter (if any are
    configured) and matches no exclude filter.
    """

    def __init__(self, filters: Iterable[F]):
        filters = list(filters)
        self._includes = [f for f in filters if not f.exclude]
        self._excludes = [f for f in filters if f.exclude]

    @property
    def is_empty(self) -> bool:
        return not self._includes and not self._excludes

    def is_filtered(self, matches: Callable[[F], bool]) -> bool:
        """Return True when the item should be dropped."""
        if self._includes and not any(matches(f) for f in self._includes):
            return True

        return any(matches(f) for f in self._excludes)


class TimeSeriesDescriptionFilter:
    """Applies identifier and description regex filters to time-series descriptions.

    Each configured dimension must accept a series for it to be exported.
    """

    def __init__(
        self,
        identifier_filters: list[TimeSeriesFilter],
        description_filters: list[TimeSeriesFilter],
    ):
        self._dimensions: list[
            tuple[Filter[TimeSeriesFilter], Callable[[TimeSeriesDescription], str]]
        ] = [
            (Filter(identifier_filters), lambda ts: ts.identifier),
            (Filter(description_filters), lambda ts: ts.description or ""),
        ]

    @classmethod
    def from_config(cls, config: ExportConfig) -> "TimeSeriesDescriptionFilter":
        return cls(config.time_series, config.time_series_descriptions)

    def accepts(self, description: TimeSeriesDescription) -> bool:
        for text_filter, selector in self._dimensions:
            if text_filter.is_empty:
                continue

            text = selector(description)
            if text_filter.is_filtered(lambda f: f.regex.search(text) is not None):
                return False

        return True

    def apply(self, descriptions: list[TimeSeriesDescription]) -> list[TimeSeriesDescription]:
        """Return the accepted descriptions, preserving order."""
        accepted = [ts for ts in descriptions if self.accepts(ts)]

        if len(accepted) != len(descriptions):
            log.info(
                "time_series_filtered",
                total=len(descriptions),
                accepted=len(accepted),
            )

        return accepted


class TimeSeriesPointFilter:
    """Drops points whose approval, grade or qualifiers are rejected by the filters.

    Approval and grade filters must already be resolved to numeric levels and
    codes (see SyncEngine filter validation).
    """

    def __init__(
        self,
        approvals: list[ApprovalFilter],
        grades: list[GradeFilter],
        qualifiers: list[QualifierFilter],
    ):
        self._approvals = Filter(approvals)
        self._grades = Filter(grades)
        self._qualifiers = Filter(qualifiers)

    @classmethod
    def from_config(cls, config: ExportConfig) -> "TimeSeriesPointFilter":
        return cls(config.approvals, config.grades, config.qualifiers)

    @property
    def is_empty(self) -> bool:
        return self._approvals.is_empty and self._grades.is_empty and self._qualifiers.is_empty

    def accepts(self, point: TimeSeriesPoint) -> bool:
        if not self._approvals.is_empty and self._approvals.is_filtered(
            lambda f: point.approval_level is not None
            and f.approval_level is not None
            and f.comparison.compare(point.approval_level, f.approval_level)
        ):
            return False

        if not self._grades.is_empty and self._grades.is_filtered(
            lambda f: point.grade_code is not None
            and f.grade_code is not None
            and f.comparison.compare(point.grade_code, f.grade_code)
        ):
            return False

        if not self._qualifiers.is_empty and self._qualifiers.is_filtered(
            lambda f: any(q.lower() == f.text.lower() for q in point.qualifiers)
        ):
            return False

        return True

    def filter_points(self, time_series: FetchedSlice) -> FetchedSlice:
        """Return the slice with rejected points removed."""
        if self.is_empty or not time_series.points:
            return time_series

        remaining = [p for p in time_series.points if self.accepts(p)]
        filtered_count = time_series.num_points - len(remaining)

        if filtered_count == 0:
            return time_series

        log.info(
            "points_filtered",
            identifier=time_series.identifier,
            filtered_count=filtered_count,
            remaining_count=len(remaining),
        )

        return time_series.with_points(remaining)
