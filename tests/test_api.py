"""
Tests for API endpoints.
"""

import os

import pytest

from app.services.import_batch_service import CompleteBatchOptions, CreateImportBatchInput
from app.services.import_service import ImportService


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "CourtFlow", "version": "0.1.0"}

    def test_health_check_content_type(self, client):
        response = client.get("/healthz")

        assert response.headers["content-type"] == "application/json"


class TestUploadEndpoint:
    """Test CSV upload."""

    @pytest.fixture
    def queued(self, monkeypatch):
        jobs = []

        def fake_queue(self, batch_id, file_path, options=None):
            jobs.append((batch_id, file_path))
            return {"job_id": "job-1", "batch_id": batch_id}

        monkeypatch.setattr(ImportService, "queue_csv_import_with_file", fake_queue)
        return jobs

    def test_upload_queues_import(self, client, queued, isolated_db_session):
        content = b"caseid_type,caseid_no,court\nHCCC,1,Milimani\n"

        response = client.post(
            "/import/upload",
            files={"file": ("cases.csv", content, "text/csv")},
            data={"created_by": "clerk"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["job_id"] == "job-1"
        assert data["filename"] == "cases.csv"
        (batch_id, file_path), = queued
        assert batch_id == data["batch_id"]
        assert os.path.exists(file_path)

        batch = ImportService(isolated_db_session).get_batch_by_id(batch_id)
        assert batch.status.value == "PENDING"
        assert batch.created_by == "clerk"
        assert batch.file_size == len(content)
        assert batch.file_checksum == data["checksum"]

    def test_upload_rejects_non_csv(self, client, queued):
        response = client.post("/import/upload", files={"file": ("cases.xlsx", b"data", "application/octet-stream")})

        assert response.status_code == 400
        assert queued == []

    def test_queue_failure_fails_batch(self, client, monkeypatch, isolated_db_session, tmp_path):
        def broken_queue(self, batch_id, file_path, options=None):
            raise ConnectionError("broker down")

        monkeypatch.setattr(ImportService, "queue_csv_import_with_file", broken_queue)

        response = client.post("/import/upload", files={"file": ("cases.csv", b"a\n1\n", "text/csv")})

        assert response.status_code == 503
        batches = ImportService(isolated_db_session).get_recent_batches()
        assert len(batches) == 1
        assert batches[0].status.value == "FAILED"
        assert os.listdir(tmp_path / "uploads") == []


class TestBatchEndpoints:
    """Test batch listing and detail."""

    @pytest.fixture
    def completed_batch(self, isolated_db_session):
        service = ImportService(isolated_db_session)
        batch = service.create_batch(CreateImportBatchInput(filename="cases.csv", created_by="clerk", total_records=3))
        service.mark_batch_processing(batch.id)
        service.batch_service.complete_batch(
            batch.id,
            CompleteBatchOptions(successful_records=2, failed_records=1),
            [{"row_number": 3, "error_message": "court: field required"}],
        )
        return batch

    def test_list_batches(self, client, completed_batch):
        response = client.get("/import/batches?limit=5")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["batches"][0]["id"] == completed_batch.id
        assert data["batches"][0]["status"] == "COMPLETED"
        assert "error_details" not in data["batches"][0]

    def test_batch_detail(self, client, completed_batch):
        response = client.get(f"/import/batches/{completed_batch.id}")

        assert response.status_code == 200
        batch = response.json()["batch"]
        assert batch["successful_records"] == 2
        assert batch["failed_records"] == 1
        assert batch["error_details"] == [
            {"row_number": 3, "error_type": "VALIDATION", "error_message": "court: field required", "severity": "ERROR"}
        ]

    def test_batch_not_found(self, client):
        response = client.get("/import/batches/missing")

        assert response.status_code == 404


class TestJobEndpoint:
    """Test job status lookup."""

    def test_job_status(self, client, monkeypatch):
        monkeypatch.setattr(
            ImportService, "get_job_status", lambda self, job_id: {"job_id": job_id, "state": "SUCCESS", "info": None}
        )

        response = client.get("/import/jobs/abc")

        assert response.status_code == 200
        assert response.json()["job"]["state"] == "SUCCESS"

    def test_job_status_backend_error(self, client, monkeypatch):
        def broken(self, job_id):
            raise RuntimeError("Failed to get job status: backend down")

        monkeypatch.setattr(ImportService, "get_job_status", broken)

        response = client.get("/import/jobs/abc")

        assert response.status_code == 503
