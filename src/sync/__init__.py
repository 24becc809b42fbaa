"""Synchronization components for incremental time-series export."""

from src.sync.change_merger import ChangeSetMerger, merge_change_events
from src.sync.cursor_store import ChangeCursorStore
from src.sync.location_cache import LocationInfoCache
from src.sync.models import ExportReport, PassStatus, SyncState
from src.sync.sync_engine import SyncEngine

__all__ = [
    "ChangeCursorStore",
    "ChangeSetMerger",
    "ExportReport",
    "LocationInfoCache",
    "PassStatus",
    "SyncEngine",
    "SyncState",
    "merge_change_events",
]
