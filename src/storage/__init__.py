"""Destination storage interfaces."""

from src.storage.observation_store import ObservationStoreInterface

__all__ = ["ObservationStoreInterface"]
