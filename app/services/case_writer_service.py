"""
Chunked transactional writer for case imports.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Sequence, Type, TypeVar

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
from sqlmodel import SQLModel

from app.models.case import Case, CaseActivity, CaseJudgeAssignment
from app.models.import_contracts import CaseImportPayload, as_utc
from app.services.config_service import DEFAULT_CHUNK_SIZE

logger = logging.getLogger("app.import.writer")

T = TypeVar("T")

CASE_CONFLICT_COLUMNS = ["case_number", "court_id"]


def chunk_list(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive slices of at most `size` elements."""
    if size <= 0:
        raise ValueError("Chunk size must be greater than zero")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


@dataclass
class ImportCounts:
    cases: int = 0
    activities: int = 0
    assignments: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class ChunkedCaseWriter:
    """Writes cases, activities and judge assignments in one transaction."""

    def __init__(self, db: Session):
        self.db = db

    def _dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    def _prepare(self, model: Type[SQLModel], records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # Table models coerce ISO strings to datetimes and fill generated ids/defaults.
        # Timestamps without an offset are stored as UTC.
        rows = []
        for record in records:
            row = model.model_validate(record).model_dump()
            rows.append({key: as_utc(value) if isinstance(value, datetime) else value for key, value in row.items()})
        return rows

    def _case_insert(self, rows: List[Dict[str, Any]]):
        dialect = self._dialect_name()
        if dialect == "postgresql":
            statement = postgresql_insert(Case.__table__)
        elif dialect == "sqlite":
            statement = sqlite_insert(Case.__table__)
        else:
            raise NotImplementedError(f"Skip-duplicate case inserts are not supported on {dialect}")
        return statement.values(rows).on_conflict_do_nothing(index_elements=CASE_CONFLICT_COLUMNS)

    def _insert_chunk(self, model: Type[SQLModel], rows: List[Dict[str, Any]]) -> int:
        """Insert one chunk and return the number of rows created."""
        if model is Case:
            result = self.db.execute(self._case_insert(rows))
            return max(result.rowcount or 0, 0)

        self.db.execute(insert(model.__table__).values(rows))
        return len(rows)

    def _write(self, model: Type[SQLModel], records: Sequence[Dict[str, Any]], chunk_size: int) -> int:
        created = 0
        for index, chunk in enumerate(chunk_list(records, chunk_size), start=1):
            rows = self._prepare(model, chunk)
            inserted = self._insert_chunk(model, rows)
            created += inserted
            logger.debug(f"{model.__tablename__} chunk {index}: {inserted}/{len(rows)} rows inserted")
        return created

    def import_case_data(self, payload: CaseImportPayload, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ImportCounts:
        """
        Persist cases, activities and assignments in bounded chunks.

        Duplicate (case_number, court_id) pairs are skipped, not counted and not
        reported as errors. Any other failure rolls back the whole batch.

        Args:
            payload: Records to insert
            chunk_size: Maximum rows per INSERT statement

        Returns:
            ImportCounts with the number of rows created per entity kind
        """
        if chunk_size <= 0:
            raise ValueError("Chunk size must be greater than zero")

        counts = ImportCounts()
        try:
            counts.cases = self._write(Case, payload.cases, chunk_size)
            counts.activities = self._write(CaseActivity, payload.activities, chunk_size)
            counts.assignments = self._write(CaseJudgeAssignment, payload.assignments, chunk_size)
            self.db.commit()
        except Exception as e:
            logger.error(f"Case import transaction rolled back: {e}")
            self.db.rollback()
            raise

        skipped = len(payload.cases) - counts.cases
        logger.info(
            f"Imported {counts.cases} cases ({skipped} duplicates skipped), "
            f"{counts.activities} activities, {counts.assignments} assignments"
        )
        return counts
