"""
Celery tasks for CourtFlow imports.
"""
import logging
from typing import Any, Dict

from app.database.session import get_db_session
from app.services.import_service import ImportConfigurationError, ImportService
from app.services.progress_service import get_progress_publisher
from worker.celery_app import CSV_IMPORT_TASK, celery_app
from worker.csv_import_worker import CsvImportWorker

logger = logging.getLogger("worker.tasks")

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 2  # seconds, doubled per retry


@celery_app.task(bind=True, name=CSV_IMPORT_TASK, max_retries=MAX_ATTEMPTS - 1)
def process_csv_import(self, job_data: Dict[str, Any]):
    """
    Run one CSV import job.

    Args:
        job_data: Job message with batchId and either filePath or payload
    """
    job_id = self.request.id
    attempt = self.request.retries + 1
    batch_id = job_data.get("batchId") or job_data.get("batch_id")
    logger.info(f"Starting CSV import job {job_id} for batch {batch_id} (attempt {attempt}/{MAX_ATTEMPTS})")

    def report_progress(percent: int) -> None:
        self.update_state(state="PROGRESS", meta={"batchId": batch_id, "progress": percent})

    try:
        with get_db_session() as db:
            worker = CsvImportWorker(ImportService(db), get_progress_publisher())
            return worker.process(job_data, job_id, report_progress=report_progress)
    except ImportConfigurationError as e:
        logger.error(f"CSV import job {job_id} misconfigured, not retrying: {e}")
        raise
    except Exception as e:
        countdown = RETRY_BASE_DELAY * 2 ** self.request.retries
        logger.error(f"CSV import job {job_id} failed on attempt {attempt}/{MAX_ATTEMPTS}: {e}")
        raise self.retry(exc=e, countdown=countdown)
