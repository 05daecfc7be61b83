"""
CSV import job orchestration.

One job moves a batch from PROCESSING to COMPLETED, or to FAILED with the error
recorded, emitting progress events at each stage.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.models.import_contracts import CaseImportPayload, ImportOptions
from app.services.config_service import config_service
from app.services.import_service import ImportConfigurationError, ImportService
from app.services.progress_service import ImportProgressPublisher, ImportStage

logger = logging.getLogger("worker.csv_import")

ProgressReporter = Callable[[int], Any]


class CsvImportJobData(BaseModel):
    """Queue message for one import job."""

    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(alias="batchId")
    file_path: Optional[str] = Field(default=None, alias="filePath")
    payload: Optional[CaseImportPayload] = None
    options: ImportOptions = Field(default_factory=ImportOptions)


class CsvImportWorker:
    """Runs import jobs against an ImportService and reports progress."""

    def __init__(
        self,
        import_service: ImportService,
        publisher: ImportProgressPublisher,
        *,
        cleanup: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.import_service = import_service
        self.publisher = publisher
        self.cleanup = cleanup or import_service.cleanup_file
        self.clock = clock or time.monotonic

    def _heartbeat(self, report_progress: Optional[ProgressReporter], percent: int, job_id: str) -> None:
        if report_progress is None:
            return
        try:
            report_progress(percent)
        except Exception as e:
            logger.warning(f"Failed to update progress for job {job_id}: {e}")

    def _cleanup_file(self, file_path: str) -> None:
        try:
            self.cleanup(file_path)
        except Exception as e:
            logger.error(f"Failed to clean up {file_path}: {e}")

    def _parse_job(self, job_data: Union[CsvImportJobData, Dict[str, Any]]) -> CsvImportJobData:
        if isinstance(job_data, CsvImportJobData):
            return job_data
        try:
            return CsvImportJobData.model_validate(job_data)
        except ValidationError as e:
            raise ImportConfigurationError(f"Invalid import job data: {e}") from e

    def _job_field(self, job_data: Union[CsvImportJobData, Dict[str, Any]], name: str, alias: str) -> Optional[str]:
        # Read before validation so a malformed job can still be failed and cleaned up
        if isinstance(job_data, CsvImportJobData):
            return getattr(job_data, name)
        if not isinstance(job_data, dict):
            return None
        value = job_data.get(alias) or job_data.get(name)
        return value if isinstance(value, str) else None

    def process(
        self,
        job_data: Union[CsvImportJobData, Dict[str, Any]],
        job_id: str,
        report_progress: Optional[ProgressReporter] = None,
    ) -> Dict[str, Any]:
        """
        Execute one import job.

        Args:
            job_data: Job message (model or raw dict with camelCase keys)
            job_id: Queue job id, echoed in events and error logs
            report_progress: Queue heartbeat callback taking a percentage

        Returns:
            Import result dict (batchId, totals, importResult)

        Raises:
            Whatever failed the job, after the batch has been marked FAILED
        """
        batch_id = self._job_field(job_data, "batch_id", "batchId")
        if not batch_id:
            raise ImportConfigurationError("Import job data has no batchId")
        file_path = self._job_field(job_data, "file_path", "filePath")
        started = self.clock()

        logger.info(f"Processing CSV import job {job_id} for batch {batch_id}")

        try:
            self.publisher.emit_progress(batch_id, job_id, 0, ImportStage.VALIDATION, "Validating import data")
            job = self._parse_job(job_data)
            self.import_service.mark_batch_processing(batch_id)

            self.publisher.emit_progress(batch_id, job_id, 20, ImportStage.PARSING, "Parsing CSV data")
            self._heartbeat(report_progress, 10, job_id)

            if file_path:
                if job.payload is not None:
                    logger.warning(f"Job {job_id} has both filePath and payload, importing the file")
                file_result = self.import_service.process_csv_file(batch_id, file_path, job.options)
                counts = file_result.counts
                options = file_result.completion_options(job.options)
                row_count = file_result.total_records
            elif job.payload is not None:
                counts = self.import_service.import_payload(job.payload, job.options)
                options = job.options
                row_count = len(job.payload.cases)
            else:
                raise ImportConfigurationError("Either filePath or payload must be provided")

            self.publisher.emit_progress(batch_id, job_id, 50, ImportStage.IMPORTING, "Importing records")
            self._heartbeat(report_progress, 50, job_id)

            result = self.import_service.finalize_batch(batch_id, counts, options, row_count=row_count)

            self.publisher.emit_progress(batch_id, job_id, 100, ImportStage.COMPLETED, "Import completed")
            self._heartbeat(report_progress, 100, job_id)

            duration = int((self.clock() - started) * 1000)
            self.publisher.emit_completed(
                batch_id,
                job_id,
                total_records=result.total_records,
                successful_records=result.successful_records,
                failed_records=result.failed_records,
                duration=duration,
            )
        except Exception as e:
            self._handle_failure(batch_id, job_id, file_path, e)
            raise

        if file_path:
            self._cleanup_file(file_path)

        logger.info(
            f"CSV import job {job_id} completed for batch {batch_id}: total={result.total_records} "
            f"successful={result.successful_records} failed={result.failed_records} duration={duration}ms"
        )
        return result.to_dict()

    def _handle_failure(self, batch_id: str, job_id: str, file_path: Optional[str], error: Exception) -> None:
        message = str(error) or "Unknown error"
        timestamp = config_service.now().isoformat()
        logger.error(f"CSV import job {job_id} failed for batch {batch_id}: {message}")

        self.publisher.emit_failed(batch_id, job_id, message, timestamp)

        if file_path:
            self._cleanup_file(file_path)

        try:
            self.import_service.fail_batch(batch_id, {"error": message, "jobId": job_id, "timestamp": timestamp})
        except Exception as fail_error:
            logger.error(f"Failed to mark batch {batch_id} as failed: {fail_error}")
