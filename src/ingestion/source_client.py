"""Source platform interface consumed by the sync engine."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from src.models.timeseries import (
    ChangeQuery,
    ChangeQueryResponse,
    FetchedSlice,
    MetadataItem,
    TimeSeriesDescription,
)


class SourceClientInterface(ABC):
    """Abstract interface for the read-only source data platform.

    Implementations perform blocking calls and let transport failures
    propagate; the sync engine decides whether a failure aborts the pass.
    """

    @abstractmethod
    def get_time_series_changes(self, query: ChangeQuery) -> ChangeQueryResponse:
        """Return the time-series changed since query.changes_since_token."""
        pass

    @abstractmethod
    def get_time_series_descriptions(self, unique_ids: list[str]) -> list[TimeSeriesDescription]:
        """Return descriptions of the given unique IDs.

        Callers keep each batch within MAXIMUM_DESCRIPTION_BATCH_SIZE IDs.
        Unknown IDs are omitted from the result rather than raising.
        """
        pass

    @abstractmethod
    def get_time_series_data(
        self,
        unique_id: str,
        query_from: datetime | None,
        apply_rounding: bool = False,
    ) -> FetchedSlice:
        """Return corrected points from query_from onwards (all history when None)."""
        pass

    @abstractmethod
    def get_location_descriptions(self, location_identifier: str) -> list[dict[str, Any]]:
        """Return location descriptions matching an identifier (empty when unknown)."""
        pass

    @abstractmethod
    def get_location_data(self, location_identifier: str) -> dict[str, Any]:
        """Return the full location record of an identifier."""
        pass

    @abstractmethod
    def get_approvals(self) -> list[MetadataItem]:
        pass

    @abstractmethod
    def get_grades(self) -> list[MetadataItem]:
        pass

    @abstractmethod
    def get_qualifiers(self) -> list[MetadataItem]:
        pass


MAXIMUM_DESCRIPTION_BATCH_SIZE: int = 400
