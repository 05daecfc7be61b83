"""
Import service for case CSV files and pre-parsed case payloads.
"""
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.case_csv import CaseCsvRow
from app.models.import_contracts import CaseImportPayload, ImportOptions, ImportTotals
from app.models.import_models import ErrorSeverity, ImportBatch
from app.services.case_writer_service import ChunkedCaseWriter, ImportCounts
from app.services.checksum_service import calculate_file_checksum
from app.services.config_service import config_service
from app.services.csv_parser_service import CsvParseOptions, parse_csv_file
from app.services.import_batch_service import (
    CompleteBatchOptions,
    CreateImportBatchInput,
    ImportBatchService,
)
from app.services.reference_resolver_service import ReferenceResolver
from app.services.row_transformer_service import transform_row

logger = logging.getLogger("app.import")


class ImportConfigurationError(ValueError):
    """Raised when an import job has nothing to import."""


@dataclass
class FileImportResult:
    """Outcome of parsing, resolving and writing one CSV file."""

    counts: ImportCounts
    total_records: int
    failed_records: int
    checksum: str
    file_size: int
    empty_rows_skipped: int = 0
    error_details: List[Dict[str, Any]] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)

    def completion_options(self, options: ImportOptions) -> ImportOptions:
        """Merge file-derived totals, errors and warnings into the job options."""
        totals = options.totals or ImportTotals(
            total_records=self.total_records,
            failed_records=self.failed_records,
        )
        warnings = options.validation_warnings
        if warnings is None and self.validation_warnings:
            warnings = list(self.validation_warnings)

        return options.model_copy(
            update={
                "totals": totals,
                "error_details": list(options.error_details or []) + self.error_details,
                "validation_warnings": warnings,
            }
        )


@dataclass
class ImportResult:
    batch_id: str
    total_records: int
    successful_records: int
    failed_records: int
    import_result: ImportCounts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "totals": {
                "totalRecords": self.total_records,
                "successfulRecords": self.successful_records,
                "failedRecords": self.failed_records,
            },
            "importResult": self.import_result.to_dict(),
        }


class ImportService:
    """Service for running case imports against one database session."""

    def __init__(
        self,
        db: Session,
        *,
        batch_service: Optional[ImportBatchService] = None,
        resolver: Optional[ReferenceResolver] = None,
        writer: Optional[ChunkedCaseWriter] = None,
    ):
        self.db = db
        self.batch_service = batch_service or ImportBatchService(db)
        self.resolver = resolver or ReferenceResolver(db)
        self.writer = writer or ChunkedCaseWriter(db)

    # Batch lifecycle

    def create_batch(self, data: CreateImportBatchInput) -> ImportBatch:
        return self.batch_service.create_batch(data)

    def mark_batch_processing(
        self,
        batch_id: str,
        processing_start_time: Optional[datetime] = None,
        estimated_completion_time: Optional[datetime] = None,
    ) -> ImportBatch:
        return self.batch_service.mark_processing(
            batch_id,
            processing_start_time=processing_start_time,
            estimated_completion_time=estimated_completion_time,
        )

    def fail_batch(self, batch_id: str, error_payload: Any) -> ImportBatch:
        return self.batch_service.fail_batch(batch_id, error_payload)

    def get_batch_by_id(self, batch_id: str, include_error_details: bool = False) -> Optional[ImportBatch]:
        return self.batch_service.get_batch(batch_id, include_error_details=include_error_details)

    def get_recent_batches(self, limit: int = 10) -> List[ImportBatch]:
        return self.batch_service.get_recent_batches(limit)

    # Import execution

    def _chunk_size(self, options: ImportOptions) -> int:
        return options.chunk_size or config_service.import_chunk_size

    def process_csv_file(self, batch_id: str, file_path: str, options: Optional[ImportOptions] = None) -> FileImportResult:
        """
        Parse a CSV file, resolve its references and write its cases.

        Args:
            batch_id: Batch the file belongs to
            file_path: Path to the uploaded CSV file
            options: Job options (chunk size is used here)

        Returns:
            FileImportResult with writer counts and row-level problems
        """
        options = options or ImportOptions()
        logger.info(f"Processing CSV file for batch {batch_id}: {file_path}")

        checksum = calculate_file_checksum(file_path, config_service.import_checksum_algorithm)

        parse_result = parse_csv_file(
            file_path,
            CsvParseOptions(
                max_rows=config_service.import_max_rows,
                skip_empty_rows=True,
                validation_schema=CaseCsvRow,
                continue_on_error=True,
                separator=config_service.import_csv_separator,
            ),
        )
        rows: List[CaseCsvRow] = parse_result.data
        total_records = parse_result.successful_rows + parse_result.failed_rows

        self.batch_service.update_file_metadata(
            batch_id,
            file_checksum=checksum.checksum,
            file_size=checksum.file_size,
            total_records=total_records,
            empty_rows_skipped=parse_result.empty_rows_skipped,
        )

        cache = self.resolver.build_cache(rows)
        # Placeholder case numbers follow the row position in the file
        cases = [
            transform_row(
                row,
                row_number - 1,
                court_id=cache.court_id_for(row),
                case_type_id=cache.case_type_id_for(row),
                original_court_id=cache.original_court_id_for(row),
            )
            for row_number, row in zip(parse_result.row_numbers, rows)
        ]

        counts = self.writer.import_case_data(CaseImportPayload(cases=cases), self._chunk_size(options))

        error_details = [
            {
                "row_number": row_error.row,
                "error_type": "VALIDATION",
                "error_message": row_error.error,
                "severity": ErrorSeverity.ERROR.value,
            }
            for row_error in parse_result.errors
        ]

        logger.info(
            f"CSV file processed for batch {batch_id}: rows={total_records} created={counts.cases} "
            f"invalid={parse_result.failed_rows} empty={parse_result.empty_rows_skipped}"
        )
        return FileImportResult(
            counts=counts,
            total_records=total_records,
            failed_records=parse_result.failed_rows,
            checksum=checksum.checksum,
            file_size=checksum.file_size,
            empty_rows_skipped=parse_result.empty_rows_skipped,
            error_details=error_details,
            validation_warnings=parse_result.warnings,
        )

    def import_payload(self, payload: CaseImportPayload, options: Optional[ImportOptions] = None) -> ImportCounts:
        """Write pre-parsed records without parsing or reference resolution."""
        options = options or ImportOptions()
        return self.writer.import_case_data(payload, self._chunk_size(options))

    def finalize_batch(
        self,
        batch_id: str,
        counts: ImportCounts,
        options: Optional[ImportOptions] = None,
        *,
        row_count: int,
    ) -> ImportResult:
        """
        Compute final totals and complete the batch.

        Total records come from the explicit totals, else the row count. Failed
        records come from the explicit totals, else whatever was not created.
        """
        options = options or ImportOptions()
        totals = options.totals

        total_records = totals.total_records if totals else row_count
        successful_records = counts.cases
        if totals and totals.failed_records is not None:
            failed_records = totals.failed_records
        else:
            failed_records = max(total_records - successful_records, 0)

        self.batch_service.update_file_metadata(batch_id, total_records=total_records)
        batch = self.batch_service.complete_batch(
            batch_id,
            CompleteBatchOptions(
                successful_records=successful_records,
                failed_records=failed_records,
                error_logs=options.error_logs,
                validation_warnings=options.validation_warnings,
                completed_at=options.completed_at,
            ),
            options.error_details or [],
        )

        return ImportResult(
            batch_id=batch_id,
            total_records=batch.total_records,
            successful_records=batch.successful_records,
            failed_records=batch.failed_records,
            import_result=counts,
        )

    def process_csv_batch(
        self, batch_id: str, payload: CaseImportPayload, options: Optional[ImportOptions] = None
    ) -> ImportResult:
        """Import a pre-parsed payload and complete its batch."""
        options = options or ImportOptions()
        counts = self.import_payload(payload, options)
        return self.finalize_batch(batch_id, counts, options, row_count=len(payload.cases))

    # Queue

    def queue_csv_import(
        self, batch_id: str, payload: CaseImportPayload, options: Optional[ImportOptions] = None
    ) -> Dict[str, str]:
        job_data = {
            "batchId": batch_id,
            "payload": payload.model_dump(mode="json"),
            "options": (options or ImportOptions()).to_job_dict(),
        }
        return self._enqueue(batch_id, job_data)

    def queue_csv_import_with_file(
        self, batch_id: str, file_path: str, options: Optional[ImportOptions] = None
    ) -> Dict[str, str]:
        job_data = {
            "batchId": batch_id,
            "filePath": file_path,
            "options": (options or ImportOptions()).to_job_dict(),
        }
        return self._enqueue(batch_id, job_data)

    def _enqueue(self, batch_id: str, job_data: Dict[str, Any]) -> Dict[str, str]:
        from worker.tasks import process_csv_import

        result = process_csv_import.apply_async(args=[job_data], priority=1)
        logger.info(f"Queued CSV import job {result.id} for batch {batch_id}")
        return {"job_id": result.id, "batch_id": batch_id}

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """
        Look up a queued job in the Celery result backend.

        Raises:
            RuntimeError: when the result backend cannot be queried
        """
        from celery.result import AsyncResult

        from worker.celery_app import celery_app

        try:
            result = AsyncResult(job_id, app=celery_app)
            state = result.state
            info = result.info
        except Exception as e:
            raise RuntimeError(f"Failed to get job status: {e}") from e

        if isinstance(info, Exception):
            info = {"error": str(info) or type(info).__name__}
        elif info is not None and not isinstance(info, dict):
            info = {"result": info}

        return {"job_id": job_id, "state": state, "info": info}

    # Files

    def save_uploaded_file(self, file_content: bytes, filename: str) -> str:
        """
        Save uploaded file to the upload directory.

        Args:
            file_content: File content as bytes
            filename: Original filename

        Returns:
            Path to saved file
        """
        upload_dir = Path(config_service.import_upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)

        timestamp = config_service.now().strftime("%Y%m%d_%H%M%S")
        safe_filename = "".join(c for c in filename if c.isalnum() or c in "._-")
        file_path = upload_dir / f"{timestamp}_{uuid.uuid4().hex[:8]}_{safe_filename}"

        with open(file_path, "wb") as f:
            f.write(file_content)

        logger.info(f"File saved: {file_path}")
        return str(file_path)

    def cleanup_file(self, file_path: str) -> None:
        """
        Delete an uploaded file. Failures propagate to the caller.
        """
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.info(f"File cleaned up: {file_path}")
