"""Destination observation store interface."""

from abc import ABC, abstractmethod
from typing import Any

from src.models.timeseries import FetchedSlice, InsertedSensor, SensorInfo, TimeSeriesDescription


class ObservationStoreInterface(ABC):
    """Abstract interface for the downstream sensor/observation store.

    The sync engine opens one connection per exported series (through a
    factory) and closes it afterwards, so each export is committed on its own.
    Implementations are not expected to tolerate concurrent writers.
    """

    def __enter__(self) -> "ObservationStoreInterface":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the connection. The default has nothing to release."""
        pass

    @abstractmethod
    def find_existing_sensor(self, description: TimeSeriesDescription) -> SensorInfo | None:
        """Return the sensor registered for a series, or None when absent."""
        pass

    @abstractmethod
    def delete_sensor(self, time_series: FetchedSlice) -> None:
        """Delete the sensor (and its observations) of a series."""
        pass

    @abstractmethod
    def delete_deleted_observations(self) -> None:
        """Purge observations already marked as deleted."""
        pass

    @abstractmethod
    def insert_sensor(self, time_series: FetchedSlice) -> InsertedSensor:
        """Register a sensor for a series and return its assigned offering."""
        pass

    @abstractmethod
    def insert_observation(
        self,
        assigned_offering: str,
        location_data: dict[str, Any],
        location_description: dict[str, Any],
        time_series: FetchedSlice,
        description: TimeSeriesDescription,
    ) -> None:
        """Append the points of a slice to an offering."""
        pass

    @abstractmethod
    def clear_datasource(self) -> None:
        """Remove every sensor and observation from the destination."""
        pass
