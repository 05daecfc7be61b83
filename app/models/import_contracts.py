"""
Job contract models shared by the import service, the queue task and the routes.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; aware values pass through unchanged."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ImportTotals(BaseModel):
    """Explicit totals supplied by the caller."""

    model_config = ConfigDict(populate_by_name=True)

    total_records: int = Field(alias="totalRecords")
    failed_records: Optional[int] = Field(default=None, alias="failedRecords")


class ImportOptions(BaseModel):
    """Per-job options passed through to the writer and the batch lifecycle."""

    model_config = ConfigDict(populate_by_name=True)

    chunk_size: Optional[int] = Field(default=None, alias="chunkSize")
    totals: Optional[ImportTotals] = None
    error_details: Optional[List[Dict[str, Any]]] = Field(default=None, alias="errorDetails")
    error_logs: Optional[Any] = Field(default=None, alias="errorLogs")
    validation_warnings: Optional[Any] = Field(default=None, alias="validationWarnings")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @field_validator("completed_at")
    @classmethod
    def _completed_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def to_job_dict(self) -> Dict[str, Any]:
        """Serialize for the queue, dropping unset values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CaseImportPayload(BaseModel):
    """Pre-parsed records, bypassing CSV parsing and resolution."""

    cases: List[Dict[str, Any]]
    activities: List[Dict[str, Any]] = Field(default_factory=list)
    assignments: List[Dict[str, Any]] = Field(default_factory=list)
