"""
Import batch lifecycle: PENDING -> PROCESSING -> COMPLETED | FAILED.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.models.import_contracts import as_utc
from app.models.import_models import ErrorSeverity, ImportBatch, ImportErrorDetail, ImportStatus
from app.services.config_service import config_service

logger = logging.getLogger("app.import.batch")

# Allowed source states per target state. FAILED -> PROCESSING and
# PROCESSING -> PROCESSING let the queue re-run a job from the start.
ALLOWED_TRANSITIONS = {
    ImportStatus.PROCESSING: {ImportStatus.PENDING, ImportStatus.PROCESSING, ImportStatus.FAILED},
    ImportStatus.COMPLETED: {ImportStatus.PROCESSING},
    ImportStatus.FAILED: {ImportStatus.PENDING, ImportStatus.PROCESSING},
}

_ERROR_DETAIL_ALIASES = {
    "rowNumber": "row_number",
    "errorType": "error_type",
    "errorMessage": "error_message",
}


class BatchNotFoundError(LookupError):
    """Raised when an import batch id does not exist."""

    def __init__(self, batch_id: str):
        super().__init__(f"Import batch {batch_id} not found")
        self.batch_id = batch_id


class InvalidBatchTransitionError(ValueError):
    """Raised when a status change is not part of the batch lifecycle."""

    def __init__(self, batch_id: str, current: ImportStatus, target: ImportStatus):
        super().__init__(f"Import batch {batch_id} cannot move from {current.value} to {target.value}")
        self.batch_id = batch_id
        self.current = current
        self.target = target


@dataclass
class CreateImportBatchInput:
    filename: str
    created_by: str
    import_date: Optional[datetime] = None
    file_size: int = 0
    file_checksum: str = ""
    total_records: int = 0
    estimated_completion_time: Optional[datetime] = None
    user_config: Optional[Dict[str, Any]] = None
    validation_warnings: Optional[Any] = None
    empty_rows_skipped: int = 0


@dataclass
class CompleteBatchOptions:
    successful_records: int
    failed_records: int
    error_logs: Optional[Any] = None
    validation_warnings: Optional[Any] = None
    completed_at: Optional[datetime] = None


def dump_json(value: Any) -> str:
    return json.dumps(value, default=str)


class ImportBatchService:
    """Owns ImportBatch status changes and final totals."""

    def __init__(self, db: Session):
        self.db = db

    def _get_or_raise(self, batch_id: str) -> ImportBatch:
        batch = self.db.get(ImportBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _check_transition(self, batch: ImportBatch, target: ImportStatus) -> None:
        current = ImportStatus(batch.status)
        if current not in ALLOWED_TRANSITIONS[target]:
            raise InvalidBatchTransitionError(batch.id, current, target)

    def create_batch(self, data: CreateImportBatchInput) -> ImportBatch:
        batch = ImportBatch(
            import_date=as_utc(data.import_date) or config_service.now(),
            filename=data.filename,
            file_size=data.file_size,
            file_checksum=data.file_checksum,
            total_records=data.total_records,
            successful_records=0,
            failed_records=0,
            error_logs="[]",
            status=ImportStatus.PENDING,
            created_by=data.created_by,
            estimated_completion_time=as_utc(data.estimated_completion_time),
            processing_start_time=None,
            user_config=dump_json(data.user_config or {}),
            validation_warnings=dump_json(data.validation_warnings if data.validation_warnings is not None else []),
            empty_rows_skipped=data.empty_rows_skipped,
        )
        self.db.add(batch)
        self.db.commit()
        self.db.refresh(batch)

        logger.info(f"Created import batch {batch.id} for {batch.filename}")
        return batch

    def mark_processing(
        self,
        batch_id: str,
        *,
        processing_start_time: Optional[datetime] = None,
        estimated_completion_time: Optional[datetime] = None,
    ) -> ImportBatch:
        batch = self._get_or_raise(batch_id)
        self._check_transition(batch, ImportStatus.PROCESSING)

        if batch.status == ImportStatus.FAILED:
            logger.info(f"Retrying import batch {batch_id} after a failed attempt")

        batch.status = ImportStatus.PROCESSING
        batch.processing_start_time = as_utc(processing_start_time) or config_service.now()
        batch.estimated_completion_time = as_utc(estimated_completion_time)
        self.db.commit()
        self.db.refresh(batch)

        logger.info(f"Import batch {batch_id} is processing")
        return batch

    def update_file_metadata(
        self,
        batch_id: str,
        *,
        file_checksum: Optional[str] = None,
        file_size: Optional[int] = None,
        total_records: Optional[int] = None,
        empty_rows_skipped: Optional[int] = None,
    ) -> ImportBatch:
        """Store values known only after the file has been read."""
        batch = self._get_or_raise(batch_id)
        if file_checksum is not None:
            batch.file_checksum = file_checksum
        if file_size is not None:
            batch.file_size = file_size
        if total_records is not None:
            batch.total_records = total_records
        if empty_rows_skipped is not None:
            batch.empty_rows_skipped = empty_rows_skipped
        self.db.commit()
        self.db.refresh(batch)
        return batch

    def _build_error_detail(self, batch_id: str, detail: Dict[str, Any]) -> ImportErrorDetail:
        values = {_ERROR_DETAIL_ALIASES.get(key, key): value for key, value in detail.items()}
        return ImportErrorDetail(
            batch_id=batch_id,
            row_number=int(values.get("row_number") or 0),
            error_type=str(values.get("error_type") or "VALIDATION"),
            error_message=str(values.get("error_message") or ""),
            severity=ErrorSeverity(values.get("severity") or ErrorSeverity.ERROR),
        )

    def complete_batch(
        self,
        batch_id: str,
        options: CompleteBatchOptions,
        error_details: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> ImportBatch:
        """
        Mark a batch COMPLETED with its final totals.

        Args:
            batch_id: Batch to complete
            options: Final counters and optional JSON payloads
            error_details: Row-level problems to store with the batch

        Returns:
            Updated batch
        """
        batch = self._get_or_raise(batch_id)
        self._check_transition(batch, ImportStatus.COMPLETED)

        successful = max(options.successful_records, 0)
        failed = max(options.failed_records, 0)
        if successful > batch.total_records:
            logger.warning(f"Batch {batch_id}: raising total records {batch.total_records} -> {successful}")
            batch.total_records = successful
        if successful + failed > batch.total_records:
            clamped = max(batch.total_records - successful, 0)
            logger.warning(
                f"Batch {batch_id}: clamping failed records {failed} -> {clamped} "
                f"(total={batch.total_records}, successful={successful})"
            )
            failed = clamped

        batch.status = ImportStatus.COMPLETED
        batch.successful_records = successful
        batch.failed_records = failed
        batch.completed_at = as_utc(options.completed_at) or config_service.now()
        if options.error_logs is not None:
            batch.error_logs = dump_json(options.error_logs)
        if options.validation_warnings is not None:
            batch.validation_warnings = dump_json(options.validation_warnings)

        details = [self._build_error_detail(batch_id, detail) for detail in (error_details or [])]
        self.db.add_all(details)
        self.db.commit()
        self.db.refresh(batch)

        logger.info(
            f"Import batch {batch_id} completed: successful={successful} failed={failed} "
            f"error_details={len(details)}"
        )
        return batch

    def fail_batch(self, batch_id: str, error_payload: Any) -> ImportBatch:
        """Mark a batch FAILED, storing the error payload as its error log."""
        # Discard whatever the failed attempt left in the session
        self.db.rollback()

        batch = self._get_or_raise(batch_id)
        self._check_transition(batch, ImportStatus.FAILED)

        batch.status = ImportStatus.FAILED
        batch.error_logs = dump_json(error_payload)
        batch.completed_at = config_service.now()
        self.db.commit()
        self.db.refresh(batch)

        logger.error(f"Import batch {batch_id} failed: {batch.error_logs}")
        return batch

    def get_batch(self, batch_id: str, include_error_details: bool = False) -> Optional[ImportBatch]:
        query = self.db.query(ImportBatch).filter(ImportBatch.id == batch_id)
        if include_error_details:
            query = query.options(selectinload(ImportBatch.error_details))
        return query.first()

    def get_recent_batches(self, limit: int = 10) -> List[ImportBatch]:
        return self.db.query(ImportBatch).order_by(ImportBatch.created_at.desc()).limit(limit).all()

    def get_batches_by_status(self, status: ImportStatus) -> List[ImportBatch]:
        return (
            self.db.query(ImportBatch)
            .filter(ImportBatch.status == status)
            .order_by(ImportBatch.created_at.desc())
            .all()
        )
