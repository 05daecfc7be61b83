"""
Pytest configuration and fixtures for CourtFlow tests.
"""

import csv
import os

os.environ.setdefault("DB_URL", "sqlite:///./test.db")
os.environ.setdefault("IMPORT_EVENTS_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.models.case  # noqa: F401,E402
import app.models.import_models  # noqa: F401,E402
from app.database.session import get_session
from app.main import app as fastapi_app
from app.services.config_service import config_service
from app.services.progress_service import ImportProgressPublisher

CASE_HEADERS = [
    "caseid_type",
    "caseid_no",
    "filed_dd",
    "filed_mon",
    "filed_yyyy",
    "court",
    "case_type",
    "outcome",
    "legalrep",
    "male_applicant",
    "female_applicant",
    "organization_applicant",
    "male_defendant",
    "female_defendant",
    "organization_defendant",
    "comingfor",
    "next_dd",
    "next_mon",
    "next_yyyy",
]


class RecordingEventSink:
    """Event sink that keeps every published event in memory."""

    def __init__(self):
        self.events = []

    def publish(self, room, event, payload):
        self.events.append((room, event, payload))

    @property
    def names(self):
        return [event for _, event, _ in self.events]


@pytest.fixture(autouse=True)
def reset_config():
    """Drop cached settings so overrides never leak between tests."""
    config_service.clear()
    yield
    config_service.clear()


@pytest.fixture(scope="function")
def isolated_db_session():
    """Create an isolated database session for each test."""
    import tempfile

    # Create temporary database file
    fd, temp_db = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create engine for this test
    engine = create_engine(f"sqlite:///{temp_db}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(bind=engine)

    # Create session
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()
        # Clean up temp file
        try:
            os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture
def client(isolated_db_session, tmp_path):
    """Create a test client with database dependency override."""
    config_service.set_setting("IMPORT_UPLOAD_DIR", str(tmp_path / "uploads"))

    def override_get_session():
        try:
            yield isolated_db_session
        finally:
            pass

    fastapi_app.dependency_overrides[get_session] = override_get_session

    from fastapi.testclient import TestClient

    with TestClient(fastapi_app) as test_client:
        yield test_client

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def write_csv(tmp_path):
    """Write rows to a CSV file and return its path."""

    def _write(rows, name="cases.csv", headers=None):
        path = tmp_path / name
        headers = headers or CASE_HEADERS
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=headers, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
        return str(path)

    return _write


@pytest.fixture
def case_row():
    """Build a well-formed CSV row, overriding selected columns."""

    def _row(**overrides):
        row = {
            "caseid_type": "HCCC",
            "caseid_no": "101",
            "filed_dd": "12",
            "filed_mon": "Mar",
            "filed_yyyy": "2021",
            "court": "Milimani Law Courts",
            "case_type": "Civil Suit",
            "outcome": "Hearing",
            "legalrep": "yes",
            "male_applicant": "1",
            "female_applicant": "0",
            "organization_applicant": "0",
            "male_defendant": "0",
            "female_defendant": "1",
            "organization_defendant": "1",
            "comingfor": "Mention",
            "next_dd": "",
            "next_mon": "",
            "next_yyyy": "",
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def recording_sink():
    return RecordingEventSink()


@pytest.fixture
def publisher(recording_sink):
    return ImportProgressPublisher(recording_sink)
