"""
Reference entity resolution for case imports.

Courts and case types named in the CSV are looked up or created before any case is
written, and their ids are kept in a per-run ReferenceCache. Rows whose reference
cannot be determined fall back to the "Unknown Court" / UNKNOWN placeholders.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Tuple, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.case import CaseType, Court, CourtType
from app.models.case_csv import CaseCsvRow
from app.services.row_transformer_service import (
    collect_case_type_code,
    collect_case_type_name,
    normalize_string,
)

logger = logging.getLogger("app.import.resolver")

UNKNOWN_COURT_NAME = "Unknown Court"
UNKNOWN_COURT_CODE = "TC-UNKNOWN-COURT"
UNKNOWN_CASE_TYPE_CODE = "UNKNOWN"
UNKNOWN_CASE_TYPE_NAME = "Unknown Case Type"
UNKNOWN_CASE_TYPE_DESCRIPTION = "Auto-generated placeholder for unmapped case types"

MAX_COURT_CODE_LENGTH = 40
MAX_CREATE_ATTEMPTS = 5

# Longest first so ELRC wins over ELC and SCC over SC
COURT_TYPE_PREFIXES = sorted((court_type.value for court_type in CourtType), key=len, reverse=True)

T = TypeVar("T")


def court_key(name: str) -> str:
    return name.strip().lower()


def infer_court_type(caseid_type: Optional[str]) -> CourtType:
    """Match a known court type as a case-insensitive prefix, TC when none matches."""
    value = normalize_string(caseid_type).upper()
    for prefix in COURT_TYPE_PREFIXES:
        if value.startswith(prefix):
            return CourtType(prefix)
    return CourtType.TC


def slugify_court_code(court_type: CourtType, name: str) -> str:
    """Build an uppercase code like HC-NAIROBI-LAW-COURTS, at most 40 characters."""
    raw = f"{CourtType(court_type).value}-{name}".upper()
    slug = re.sub(r"[^A-Z0-9]+", "-", raw).strip("-")
    return slug[:MAX_COURT_CODE_LENGTH].rstrip("-")


@dataclass
class ReferenceCache:
    """Resolved reference ids for one import run."""

    court_ids: Dict[str, str] = field(default_factory=dict)  # lowercased court name -> id
    case_type_ids: Dict[str, str] = field(default_factory=dict)  # case type code -> id
    unknown_court_id: Optional[str] = None
    unknown_case_type_id: Optional[str] = None

    def _court_id(self, name: str) -> str:
        court_id = self.court_ids.get(court_key(name)) if name else None
        return court_id or self.unknown_court_id

    def court_id_for(self, row: CaseCsvRow) -> str:
        return self._court_id(normalize_string(row.court))

    def original_court_id_for(self, row: CaseCsvRow) -> Optional[str]:
        name = normalize_string(row.original_court)
        if not name:
            return None
        return self._court_id(name)

    def case_type_id_for(self, row: CaseCsvRow) -> str:
        code = collect_case_type_code(row)
        case_type_id = self.case_type_ids.get(code) if code else None
        return case_type_id or self.unknown_case_type_id


class ReferenceResolver:
    """Looks up or creates courts and case types referenced by CSV rows."""

    def __init__(self, db: Session):
        self.db = db

    def build_cache(self, rows: Iterable[CaseCsvRow]) -> ReferenceCache:
        """
        Resolve every court and case type the rows reference.

        Args:
            rows: Validated CSV rows

        Returns:
            Fully populated ReferenceCache
        """
        cache = ReferenceCache()
        courts: Dict[str, Tuple[str, CourtType]] = {}
        case_types: Dict[str, str] = {}
        needs_unknown_court = False
        needs_unknown_case_type = False

        for row in rows:
            for name_value, type_value in ((row.court, row.caseid_type), (row.original_court, row.original_code)):
                name = normalize_string(name_value)
                if not name:
                    continue
                if court_key(name) == court_key(UNKNOWN_COURT_NAME):
                    needs_unknown_court = True
                    continue
                courts.setdefault(court_key(name), (name, infer_court_type(type_value)))

            if not normalize_string(row.court):
                needs_unknown_court = True

            code = collect_case_type_code(row)
            if code:
                case_types.setdefault(code, collect_case_type_name(row) or code)
            else:
                needs_unknown_case_type = True

        for key, (name, court_type) in courts.items():
            try:
                cache.court_ids[key] = self.resolve_court(name, court_type)
            except SQLAlchemyError as e:
                logger.error(f"Failed to resolve court '{name}', using placeholder: {e}")
                needs_unknown_court = True

        for code, name in case_types.items():
            try:
                cache.case_type_ids[code] = self.resolve_case_type(code, name)
            except SQLAlchemyError as e:
                logger.error(f"Failed to resolve case type '{code}', using placeholder: {e}")
                needs_unknown_case_type = True

        if needs_unknown_court:
            cache.unknown_court_id = self.resolve_unknown_court()
        if needs_unknown_case_type:
            cache.unknown_case_type_id = self.resolve_unknown_case_type()

        logger.info(
            f"Reference cache built: {len(cache.court_ids)} courts, {len(cache.case_type_ids)} case types, "
            f"court placeholder={'yes' if needs_unknown_court else 'no'}, "
            f"case type placeholder={'yes' if needs_unknown_case_type else 'no'}"
        )
        return cache

    def _find_active_court(self, name: str) -> Optional[Court]:
        return (
            self.db.query(Court)
            .filter(func.lower(Court.court_name) == court_key(name), Court.is_active == True)  # noqa: E712
            .first()
        )

    def _insert_or_fetch(self, entity: T, fetch: Callable[[], Optional[T]]) -> Optional[T]:
        """
        Insert an entity; on a unique conflict return the row another writer created.

        Returns None when the conflict was not caused by an equivalent row.
        """
        self.db.add(entity)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.debug(f"Unique conflict creating {type(entity).__name__}, fetching existing row")
            return fetch()
        self.db.refresh(entity)
        return entity

    def generate_unique_court_code(self, court_type: CourtType, name: str) -> str:
        """Search for an unused court code, appending -2, -3, ... on collision."""
        base = slugify_court_code(court_type, name)
        candidate = base
        suffix = 2
        # Inactive courts still own their codes
        while self.db.query(Court.id).filter(Court.court_code == candidate).first() is not None:
            tail = f"-{suffix}"
            candidate = f"{base[:MAX_COURT_CODE_LENGTH - len(tail)].rstrip('-')}{tail}"
            suffix += 1
        return candidate

    def resolve_court(self, name: str, court_type: CourtType) -> str:
        existing = self._find_active_court(name)
        if existing:
            return existing.id

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            code = self.generate_unique_court_code(court_type, name)
            court = Court(court_name=name, court_code=code, court_type=court_type)
            created = self._insert_or_fetch(court, lambda: self._find_active_court(name))
            if created:
                if created is court:
                    logger.info(f"Created court '{name}' ({code}, {court_type.value})")
                return created.id
            logger.warning(f"Court code {code} taken concurrently, retrying (attempt {attempt})")

        raise SQLAlchemyError(f"Could not allocate a court code for '{name}'")

    def _find_case_type(self, code: str) -> Optional[CaseType]:
        return self.db.query(CaseType).filter(CaseType.case_type_code == code).first()

    def resolve_case_type(self, code: str, name: str) -> str:
        existing = self._find_case_type(code)
        if existing:
            return existing.id

        case_type = CaseType(case_type_code=code, case_type_name=name or code)
        created = self._insert_or_fetch(case_type, lambda: self._find_case_type(code))
        if created is None:
            raise SQLAlchemyError(f"Case type {code} conflicted but could not be fetched")
        if created is case_type:
            logger.info(f"Created case type {code} ('{case_type.case_type_name}')")
        return created.id

    def _find_court_by_code(self, code: str) -> Optional[Court]:
        return self.db.query(Court).filter(Court.court_code == code).first()

    def resolve_unknown_court(self) -> str:
        """Placeholder court shared by every batch."""
        existing = self._find_court_by_code(UNKNOWN_COURT_CODE)
        if existing:
            return existing.id

        court = Court(court_name=UNKNOWN_COURT_NAME, court_code=UNKNOWN_COURT_CODE, court_type=CourtType.TC)
        created = self._insert_or_fetch(court, lambda: self._find_court_by_code(UNKNOWN_COURT_CODE))
        if created is None:
            raise SQLAlchemyError("Unknown court placeholder unavailable")
        return created.id

    def resolve_unknown_case_type(self) -> str:
        """Placeholder case type shared by every batch."""
        existing = self._find_case_type(UNKNOWN_CASE_TYPE_CODE)
        if existing:
            return existing.id

        case_type = CaseType(
            case_type_code=UNKNOWN_CASE_TYPE_CODE,
            case_type_name=UNKNOWN_CASE_TYPE_NAME,
            description=UNKNOWN_CASE_TYPE_DESCRIPTION,
        )
        created = self._insert_or_fetch(case_type, lambda: self._find_case_type(UNKNOWN_CASE_TYPE_CODE))
        if created is None:
            raise SQLAlchemyError("Unknown case type placeholder unavailable")
        return created.id
