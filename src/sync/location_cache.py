"""Pass-scoped cache of location metadata."""

import structlog

from src.ingestion.source_client import SourceClientInterface
from src.models.timeseries import LocationInfo
from src.utils.errors import FilterValidationError

log = structlog.stdlib.get_logger()


class LocationInfoCache:
    """Fetches each location's description and data at most once per pass.

    Create a new instance for every pass; nothing is shared across passes.
    """

    def __init__(self, source: SourceClientInterface):
        self._source = source
        self._cache: dict[str, LocationInfo] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, location_identifier: str) -> LocationInfo:
        """
        Return description and data of a location.

        Raises:
            FilterValidationError: If the location does not exist
        """
        cached = self._cache.get(location_identifier)
        if cached is not None:
            return cached

        descriptions = self._source.get_location_descriptions(location_identifier)
        if not descriptions:
            raise FilterValidationError(f"Location '{location_identifier}' does not exist.")

        location_info = LocationInfo(
            description=descriptions[0],
            data=self._source.get_location_data(location_identifier),
        )

        self._cache[location_identifier] = location_info
        log.debug("location_info_cached", location_identifier=location_identifier)

        return location_info
