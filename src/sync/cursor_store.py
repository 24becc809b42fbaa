"""Persistence of the change cursor between export passes."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from src.sync.models import SyncState

log = structlog.stdlib.get_logger()


class ChangeCursorStore:
    """Stores the last fully exported change token in a JSON state file.

    The token must only be saved once a pass has exported every change, so a
    pass that dies midway is simply redone from the previous token.
    """

    def __init__(self, state_file: str | Path, token_lifetime: timedelta = timedelta(hours=48)):
        """
        Initialize cursor store.

        Args:
            state_file: Path of the JSON state file (created on first save)
            token_lifetime: How long the source honours a change token
        """
        self._state_file = Path(state_file)
        self._token_lifetime = token_lifetime
        log.info("cursor_store_initialized", state_file=str(self._state_file))

    def max_token_lifetime(self) -> timedelta:
        return self._token_lifetime

    def load_state(self) -> SyncState | None:
        """
        Load the persisted sync state.

        Returns:
            SyncState if a state file exists, None otherwise

        Raises:
            RuntimeError: If the state file exists but cannot be read or parsed
        """
        if not self._state_file.exists():
            log.info("no_sync_state_found", state_file=str(self._state_file))
            return None

        try:
            state = SyncState.model_validate_json(self._state_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            log.error("failed_to_load_sync_state", state_file=str(self._state_file), error=str(e))
            raise RuntimeError(f"Failed to load sync state: {e}") from e

        log.info("sync_state_loaded", changes_since_token=state.changes_since_token)
        return state

    def load(self) -> datetime | None:
        """Return the last persisted change token, or None if never synced."""
        state = self.load_state()
        return state.changes_since_token if state else None

    def save(
        self,
        token: datetime,
        exported_time_series_count: int = 0,
        exported_point_count: int = 0,
    ) -> SyncState:
        """
        Atomically persist a change token.

        The state is written to a temporary file beside the target and then
        renamed over it, so readers never observe a partial file.

        Args:
            token: Change token to resume from next pass
            exported_time_series_count: Series exported by the finished pass
            exported_point_count: Points exported by the finished pass

        Returns:
            The persisted SyncState

        Raises:
            RuntimeError: If the state cannot be written
        """
        state = SyncState(
            changes_since_token=token,
            saved_at=datetime.now(timezone.utc),
            exported_time_series_count=exported_time_series_count,
            exported_point_count=exported_point_count,
        )

        log.info("saving_sync_state", changes_since_token=token, state_file=str(self._state_file))

        temp_path: str | None = None
        try:
            self._state_file.parent.mkdir(parents=True, exist_ok=True)

            fd, temp_path = tempfile.mkstemp(
                prefix=f".{self._state_file.name}.", dir=self._state_file.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, self._state_file)
            temp_path = None
        except OSError as e:
            log.error("failed_to_save_sync_state", state_file=str(self._state_file), error=str(e))
            raise RuntimeError(f"Failed to save sync state: {e}") from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)

        log.info("sync_state_saved", changes_since_token=token)
        return state
