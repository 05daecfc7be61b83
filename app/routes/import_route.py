"""
Import routes for CSV upload and batch tracking.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.database.session import get_session
from app.models.import_models import ImportBatch
from app.services.checksum_service import calculate_file_checksum
from app.services.config_service import config_service
from app.services.import_batch_service import CreateImportBatchInput
from app.services.import_service import ImportService

router = APIRouter(prefix="/import", tags=["import"])
logger = logging.getLogger("app.import")


def get_import_service(db: Session = Depends(get_session)) -> ImportService:
    return ImportService(db)


def _isoformat(value) -> Any:
    return value.isoformat() if value else None


def serialize_batch(batch: ImportBatch, include_error_details: bool = False) -> Dict[str, Any]:
    data = {
        "id": batch.id,
        "filename": batch.filename,
        "status": batch.status.value if hasattr(batch.status, "value") else batch.status,
        "file_size": batch.file_size,
        "file_checksum": batch.file_checksum,
        "total_records": batch.total_records,
        "successful_records": batch.successful_records,
        "failed_records": batch.failed_records,
        "empty_rows_skipped": batch.empty_rows_skipped,
        "created_by": batch.created_by,
        "import_date": _isoformat(batch.import_date),
        "created_at": _isoformat(batch.created_at),
        "processing_start_time": _isoformat(batch.processing_start_time),
        "completed_at": _isoformat(batch.completed_at),
        "error_logs": json.loads(batch.error_logs or "[]"),
        "validation_warnings": json.loads(batch.validation_warnings or "[]"),
    }
    if include_error_details:
        data["error_details"] = [
            {
                "row_number": detail.row_number,
                "error_type": detail.error_type,
                "error_message": detail.error_message,
                "severity": detail.severity.value if hasattr(detail.severity, "value") else detail.severity,
            }
            for detail in batch.error_details
        ]
    return data


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    created_by: str = Form("system"),
    import_service: ImportService = Depends(get_import_service),
) -> Dict[str, Any]:
    """
    Upload a case CSV file and queue its import.

    Args:
        file: Uploaded CSV file
        created_by: Uploader recorded on the batch

    Returns:
        Batch and queued job information
    """
    logger.info(f"File upload requested: {file.filename}")

    # Validate file type
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files (.csv) are allowed")

    file_content = await file.read()
    file_path = import_service.save_uploaded_file(file_content, file.filename)
    checksum = calculate_file_checksum(file_path, config_service.import_checksum_algorithm)

    batch = import_service.create_batch(
        CreateImportBatchInput(
            filename=file.filename,
            created_by=created_by,
            file_size=checksum.file_size,
            file_checksum=checksum.checksum,
        )
    )

    try:
        job = import_service.queue_csv_import_with_file(batch.id, file_path)
    except Exception as e:
        logger.error(f"Failed to queue import for batch {batch.id}: {e}")
        import_service.fail_batch(
            batch.id,
            {"error": f"Queueing failed: {e}", "jobId": None, "timestamp": config_service.now().isoformat()},
        )
        try:
            import_service.cleanup_file(file_path)
        except OSError as cleanup_error:
            logger.error(f"Failed to clean up {file_path}: {cleanup_error}")
        raise HTTPException(status_code=503, detail="Import queue unavailable")

    logger.info(f"Import batch created: {batch.id}, job: {job['job_id']}")

    return {
        "status": "success",
        "batch_id": batch.id,
        "job_id": job["job_id"],
        "filename": file.filename,
        "checksum": checksum.checksum,
    }


@router.get("/batches")
async def list_batches(limit: int = 10, import_service: ImportService = Depends(get_import_service)) -> Dict[str, Any]:
    """
    List recent import batches.
    """
    batches = import_service.get_recent_batches(limit)
    return {"status": "success", "batches": [serialize_batch(batch) for batch in batches], "total": len(batches)}


@router.get("/batches/{batch_id}")
async def get_batch(batch_id: str, import_service: ImportService = Depends(get_import_service)) -> Dict[str, Any]:
    """
    Get one import batch with its row-level errors.
    """
    batch = import_service.get_batch_by_id(batch_id, include_error_details=True)
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")

    return {"status": "success", "batch": serialize_batch(batch, include_error_details=True)}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, import_service: ImportService = Depends(get_import_service)) -> Dict[str, Any]:
    """
    Get queue status for an import job.
    """
    try:
        job = import_service.get_job_status(job_id)
    except RuntimeError as e:
        logger.error(f"Job status lookup failed for {job_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    return {"status": "success", "job": job}
