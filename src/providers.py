"""Centralized provider module for source client, cursor store and engine wiring.

This module provides factory functions that turn an AppConfig into ready-to-use
components. Swap implementations here without changing other code.

Default implementations:
- Source client: PublishClient (requests against the publish API)
- Cursor store: ChangeCursorStore (JSON state file)

The destination store is deployment-specific and is always supplied by the caller.
"""

from datetime import timedelta
from typing import Callable

import structlog

from src.ingestion.publish_client import PublishClient
from src.ingestion.source_client import SourceClientInterface
from src.models.config import AppConfig, CursorConfig, SourceConfig
from src.storage.observation_store import ObservationStoreInterface
from src.sync.cursor_store import ChangeCursorStore
from src.sync.sync_engine import SyncEngine

log = structlog.stdlib.get_logger()


def get_source_client(config: SourceConfig) -> SourceClientInterface:
    """Get the configured source client implementation.

    Args:
        config: Source connection settings

    Returns:
        SourceClientInterface instance

    Raises:
        RuntimeError: If the client cannot be initialized
    """
    try:
        return PublishClient(config)
    except Exception as e:
        log.error(
            "get_source_client_failed",
            base_url=str(config.base_url),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise RuntimeError(
            f"Failed to initialize source client for '{config.base_url}': {e}"
        ) from e


def get_cursor_store(config: CursorConfig) -> ChangeCursorStore:
    """Get the configured change cursor store.

    Args:
        config: Cursor persistence settings

    Returns:
        ChangeCursorStore instance

    Raises:
        ValueError: If the state file path is empty
    """
    if not config.state_file or not config.state_file.strip():
        error_msg = "cursor.state_file cannot be empty"
        log.error("get_cursor_store_failed", error=error_msg)
        raise ValueError(error_msg)

    return ChangeCursorStore(
        config.state_file,
        token_lifetime=timedelta(hours=config.token_lifetime_hours),
    )


def get_sync_engine(
    config: AppConfig,
    destination_factory: Callable[[], ObservationStoreInterface],
    source: SourceClientInterface | None = None,
) -> SyncEngine:
    """Build a SyncEngine from configuration.

    Args:
        config: Application configuration
        destination_factory: Opens a connection to the destination store
        source: Optional source client (built from config.source if None)

    Returns:
        SyncEngine ready to run a pass
    """
    log.info("initializing_sync_engine", base_url=str(config.source.base_url))

    return SyncEngine(
        source=source or get_source_client(config.source),
        destination_factory=destination_factory,
        cursor_store=get_cursor_store(config.cursor),
        config=config.export,
    )
