"""
Import batch models.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, Text
from sqlmodel import Field, Relationship, SQLModel


def new_id() -> str:
    """Generate a string primary key."""
    return uuid.uuid4().hex


class ImportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ErrorSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class ImportBatch(SQLModel, table=True):
    """One CSV import run, tracked from upload to completion."""

    __tablename__ = "daily_import_batches"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    import_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    filename: str = Field(max_length=255)
    file_size: int = Field(default=0)
    file_checksum: str = Field(default="", max_length=128)
    total_records: int = Field(default=0)
    successful_records: int = Field(default=0)
    failed_records: int = Field(default=0)
    error_logs: str = Field(default="[]", sa_column=Column(Text, nullable=False, default="[]"))  # JSON
    status: ImportStatus = Field(default=ImportStatus.PENDING, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = Field(default=None)
    created_by: str = Field(max_length=50)
    estimated_completion_time: Optional[datetime] = Field(default=None)
    processing_start_time: Optional[datetime] = Field(default=None)
    user_config: str = Field(default="{}", sa_column=Column(Text, nullable=False, default="{}"))  # JSON
    validation_warnings: str = Field(default="[]", sa_column=Column(Text, nullable=False, default="[]"))  # JSON
    empty_rows_skipped: int = Field(default=0)

    # Relationships
    error_details: List["ImportErrorDetail"] = Relationship(back_populates="batch")


class ImportErrorDetail(SQLModel, table=True):
    """Row-level problem recorded when a batch finishes."""

    __tablename__ = "import_error_details"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    batch_id: str = Field(foreign_key="daily_import_batches.id", index=True)
    row_number: int = Field()
    error_type: str = Field(max_length=50)  # VALIDATION, PARSING, DATABASE, ...
    error_message: str = Field(sa_column=Column(Text, nullable=False))
    severity: ErrorSeverity = Field(default=ErrorSeverity.ERROR)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    batch: Optional[ImportBatch] = Relationship(back_populates="error_details")
