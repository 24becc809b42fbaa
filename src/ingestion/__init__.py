"""Source platform access and minimal point retrieval."""

from src.ingestion.minimal_fetcher import FetchResult, MinimalTimeSeriesFetcher
from src.ingestion.publish_client import PublishClient
from src.ingestion.recent_signal_fetcher import PointDataRequest, RecentSignalFetcher
from src.ingestion.source_client import MAXIMUM_DESCRIPTION_BATCH_SIZE, SourceClientInterface

__all__ = [
    "FetchResult",
    "MAXIMUM_DESCRIPTION_BATCH_SIZE",
    "MinimalTimeSeriesFetcher",
    "PointDataRequest",
    "PublishClient",
    "RecentSignalFetcher",
    "SourceClientInterface",
]
