"""
Row transformation: raw CSV case rows to normalized case records.

All functions here are pure. Coercion is lenient: unparsable numbers become 0 and
unparsable dates become None, nothing raises on bad input.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pandas as pd

from app.models.case import CaseStatus
from app.models.case_csv import CaseCsvRow
from app.services.config_service import config_service

MONTH_INDEX = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

RESOLVED_OUTCOME_KEYWORDS = ("terminated", "dismissed", "closed", "resolved")
TRUE_VALUES = {"yes", "y", "true", "1"}
FALSE_VALUES = {"no", "n", "false", "0"}

_LEADING_INT = re.compile(r"\s*(-?\d+)")


def normalize_string(value: Any) -> str:
    """Trimmed string for text and finite numbers, empty string otherwise."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value == value and value not in (float("inf"), float("-inf")):
        return str(value)
    return ""


def _leading_int(text: str) -> Optional[int]:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def parse_integer(value: Any) -> int:
    """
    Coerce a value to int.

    Strings keep only digits and '-', then the leading integer is read.
    Blank or unparsable input gives 0.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float("inf") else 0
    if isinstance(value, str):
        numeric = re.sub(r"[^0-9-]+", "", value)
        parsed = _leading_int(numeric) if numeric else None
        return parsed if parsed is not None else 0
    return 0


def parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
    return False


def parse_generic_date(value: Any) -> Optional[datetime]:
    """Parse a free-form date string as UTC; None when it cannot be parsed."""
    text = normalize_string(value)
    if not text:
        return None

    parsed = pd.to_datetime(text, utc=True, errors="coerce")
    if parsed is pd.NaT or pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_date_parts(day: Any, month: Any, year: Any) -> Optional[datetime]:
    """
    Build a UTC date from a day / month-label / year triple.

    The month is matched on its first three letters (jan..dec). When the triple
    is incomplete, the year field alone is tried as a generic date.
    """
    day_number = _leading_int(normalize_string(day))
    month_number = MONTH_INDEX.get(normalize_string(month).lower()[:3])
    year_number = _leading_int(normalize_string(year))

    if day_number is not None and month_number is not None and year_number is not None:
        try:
            return datetime(year_number, month_number, day_number, tzinfo=timezone.utc)
        except ValueError:
            pass

    return parse_generic_date(year)


def derive_status(outcome: Any) -> CaseStatus:
    text = normalize_string(outcome).lower()
    if any(keyword in text for keyword in RESOLVED_OUTCOME_KEYWORDS):
        return CaseStatus.RESOLVED
    return CaseStatus.ACTIVE


def derive_case_number(row: CaseCsvRow, index: int) -> str:
    """
    Join case id type, case id number and year with '/'.

    Rows with none of them get "unknown-{index}".
    """
    year = (
        normalize_string(row.filed_yyyy)
        or normalize_string(row.date_yyyy)
        or normalize_string(row.original_year)
    )
    segments = [
        segment
        for segment in (normalize_string(row.caseid_type), normalize_string(row.caseid_no), year)
        if segment
    ]
    if not segments:
        return f"unknown-{index}"
    return "/".join(segments)


def derive_total_activities(row: CaseCsvRow) -> int:
    return (
        parse_integer(row.total_activities)
        or parse_integer(row.activity_total)
        or (1 if normalize_string(row.comingfor) else 0)
    )


def party_counts(row: CaseCsvRow) -> Dict[str, int]:
    return {
        "male_applicant": parse_integer(row.male_applicant),
        "female_applicant": parse_integer(row.female_applicant),
        "organization_applicant": parse_integer(row.organization_applicant),
        "male_defendant": parse_integer(row.male_defendant),
        "female_defendant": parse_integer(row.female_defendant),
        "organization_defendant": parse_integer(row.organization_defendant),
    }


def build_parties_payload(row: CaseCsvRow) -> str:
    """Serialize party counts as the JSON summary stored on the case."""
    counts = party_counts(row)
    summary = {
        "maleApplicant": counts["male_applicant"],
        "femaleApplicant": counts["female_applicant"],
        "organizationApplicant": counts["organization_applicant"],
        "maleDefendant": counts["male_defendant"],
        "femaleDefendant": counts["female_defendant"],
        "organizationDefendant": counts["organization_defendant"],
    }
    return json.dumps({"summary": summary})


def collect_case_type_code(row: CaseCsvRow) -> str:
    """Case type key for resolution; empty string when the row has none."""
    code = (
        normalize_string(row.caseid_type)
        or normalize_string(row.case_type)
        or normalize_string(row.case_type_id)
    )
    return code.upper()


def collect_case_type_name(row: CaseCsvRow) -> str:
    return (
        normalize_string(row.case_type)
        or normalize_string(row.case_type_label)
        or normalize_string(row.case_type_name)
    )


def transform_row(
    row: CaseCsvRow,
    index: int,
    court_id: str,
    case_type_id: str,
    original_court_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Convert one CSV row into a case record ready for the writer.

    Args:
        row: Validated CSV row
        index: 0-based position of the row among the data rows of the file
        court_id: Resolved court id (possibly the placeholder)
        case_type_id: Resolved case type id (possibly the placeholder)
        original_court_id: Resolved original court id, if any

    Returns:
        Dict keyed by Case column names
    """
    filed_date = (
        parse_date_parts(row.filed_dd, row.filed_mon, row.filed_yyyy)
        or parse_generic_date(row.filed_date)
        or config_service.now()
    )
    activity_date = parse_date_parts(row.date_dd, row.date_mon, row.date_yyyy)
    next_hearing_date = parse_date_parts(row.next_dd, row.next_mon, row.next_yyyy)

    record = {
        "case_number": derive_case_number(row, index),
        "court_id": court_id,
        "original_court_id": original_court_id,
        "case_type_id": case_type_id,
        "filed_date": filed_date,
        "status": derive_status(row.outcome),
        "total_activities": derive_total_activities(row),
        "parties": build_parties_payload(row),
        "has_legal_representation": parse_boolean(row.legalrep),
        "next_activity_date": next_hearing_date or activity_date,
        "caseid_type": normalize_string(row.caseid_type) or None,
        "caseid_no": normalize_string(row.caseid_no) or None,
        "original_case_number": normalize_string(row.original_number) or None,
        "original_year": parse_integer(row.original_year) or None,
    }
    record.update(party_counts(row))
    return record
