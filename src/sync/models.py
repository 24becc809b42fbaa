"""Data models for synchronization state and pass results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncState(BaseModel):
    """Persisted change cursor of the last fully exported pass."""

    changes_since_token: datetime = Field(
        default=..., description="Token to resume change detection from"
    )
    saved_at: datetime = Field(default=..., description="When the token was persisted")
    exported_time_series_count: int = Field(default=0, ge=0)
    exported_point_count: int = Field(default=0, ge=0)

    model_config = {
        "json_schema_extra": {
            "example": {
                "changes_since_token": "2024-01-15T14:30:00Z",
                "saved_at": "2024-01-15T14:42:10Z",
                "exported_time_series_count": 12,
                "exported_point_count": 35012,
            }
        }
    }


class PassStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ExportReport(BaseModel):
    """Report of one export pass."""

    status: PassStatus = Field(default=PassStatus.COMPLETED)
    exported_time_series_count: int = Field(default=0, ge=0)
    exported_point_count: int = Field(default=0, ge=0)
    skipped_time_series: list[str] = Field(
        default_factory=list, description="Unique IDs whose descriptions vanished mid-pass"
    )
    starting_token: datetime | None = Field(default=None, description="Token the pass began with")
    persisted_token: datetime | None = Field(
        default=None, description="Token saved at the end of the pass, None when nothing was saved"
    )
    change_query_count: int = Field(default=0, ge=0)
    dry_run: bool = Field(default=False)
    start_time: datetime = Field(default=..., description="Pass start timestamp")
    end_time: datetime | None = Field(default=None, description="Pass end timestamp")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    skip_reason: str | None = Field(default=None)
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if the pass ended without errors."""
        return self.status is not PassStatus.FAILED and not self.errors

    def summary(self) -> str:
        if self.status is PassStatus.SKIPPED:
            return f"Skipped: {self.skip_reason}"
        if self.status is PassStatus.FAILED:
            return f"Failed: {'; '.join(self.errors)}"
        return (
            f"Exported {self.exported_point_count} points from "
            f"{self.exported_time_series_count} time-series in {self.duration_seconds:.1f}s"
        )
