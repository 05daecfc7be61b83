"""
Streaming CSV parsing for import files.

Rows are read lazily with the csv module; optional pydantic schemas validate each row
independently. Helpers cover header checks, cheap statistics and duplicate detection.
"""
import csv
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import pandas as pd
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("app.import.csv")

SAMPLE_SIZE = 5
STATS_CHUNK_SIZE = 10_000


class CsvValidationError(ValueError):
    """Raised when a row fails validation and parsing must stop."""

    def __init__(self, row_number: int, message: str, row_errors: Optional[List["CsvRowError"]] = None):
        super().__init__(f"CSV validation failed at row {row_number}: {message}")
        self.row_number = row_number
        self.row_errors = row_errors or []


@dataclass
class CsvParseOptions:
    max_rows: int = 0  # 0 = unlimited
    skip_empty_rows: bool = True
    headers: Optional[List[str]] = None  # use when the file has no header row
    validation_schema: Optional[Type[BaseModel]] = None
    continue_on_error: bool = True
    separator: str = ","


@dataclass
class CsvRowError:
    row: int
    data: Dict[str, Any]
    error: str
    field: Optional[str] = None


@dataclass
class CsvParseResult:
    data: List[Any] = field(default_factory=list)
    row_numbers: List[int] = field(default_factory=list)
    errors: List[CsvRowError] = field(default_factory=list)
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    empty_rows_skipped: int = 0
    headers: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _sanitize_header(header: Optional[str]) -> str:
    return (header or "").strip().lstrip("\ufeff")


def _read_header(file_path: str, separator: str) -> List[str]:
    with open(file_path, newline="", encoding="utf-8-sig") as f:
        first = next(csv.reader(f, delimiter=separator), [])
    return [_sanitize_header(h) for h in first]


def _clean_row(row: Dict[Optional[str], Any]) -> Dict[str, Any]:
    # DictReader stores surplus values under a None key
    return {key: value for key, value in row.items() if key is not None}


def is_empty_row(row: Dict[str, Any]) -> bool:
    """A row is empty when every field is blank or missing."""
    return all(value is None or (isinstance(value, str) and value.strip() == "") for value in row.values())


def iter_csv_rows(file_path: str, options: Optional[CsvParseOptions] = None) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """
    Lazily yield (row_number, row) pairs from a CSV file.

    Row numbers are 1-based data-row positions. Closing the generator closes the file;
    to read again, call this function again.
    """
    options = options or CsvParseOptions()

    with open(file_path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f, fieldnames=options.headers, delimiter=options.separator)
        if options.headers is None and reader.fieldnames is not None:
            reader.fieldnames = [_sanitize_header(h) for h in reader.fieldnames]

        for row_number, row in enumerate(reader, start=1):
            yield row_number, _clean_row(row)


def _format_validation_error(exc: ValidationError) -> Tuple[str, Optional[str]]:
    issues = exc.errors()
    message = "; ".join(f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}" for issue in issues)
    first_loc = issues[0]["loc"] if issues else ()
    return message, (str(first_loc[0]) if first_loc else None)


def parse_csv_file(file_path: str, options: Optional[CsvParseOptions] = None) -> CsvParseResult:
    """
    Parse a CSV file with optional per-row validation.

    Args:
        file_path: Path to the CSV file
        options: Parsing options

    Returns:
        CsvParseResult with valid rows, row errors and counters

    Raises:
        CsvValidationError: first invalid row when continue_on_error is False
    """
    options = options or CsvParseOptions()
    result = CsvParseResult()
    result.headers = list(options.headers) if options.headers else _read_header(file_path, options.separator)
    logger.debug(f"CSV headers detected: {', '.join(result.headers)}")

    rows = iter_csv_rows(file_path, options)
    try:
        for row_number, row in rows:
            if options.max_rows > 0 and result.total_rows >= options.max_rows:
                result.warnings.append(
                    f"Maximum row limit of {options.max_rows} reached. Remaining rows not processed."
                )
                break

            result.total_rows += 1

            if options.skip_empty_rows and is_empty_row(row):
                result.empty_rows_skipped += 1
                continue

            if options.validation_schema is None:
                result.data.append(row)
                result.row_numbers.append(row_number)
                continue

            try:
                result.data.append(options.validation_schema.model_validate(row))
                result.row_numbers.append(row_number)
            except ValidationError as e:
                message, field_name = _format_validation_error(e)
                row_error = CsvRowError(row=row_number, data=row, error=message, field=field_name)
                result.errors.append(row_error)

                if not options.continue_on_error:
                    raise CsvValidationError(row_number, message, result.errors) from e
    finally:
        rows.close()

    result.successful_rows = len(result.data)
    result.failed_rows = len(result.errors)

    logger.info(
        f"CSV parsing completed: {file_path} total={result.total_rows} successful={result.successful_rows} "
        f"failed={result.failed_rows} empty_skipped={result.empty_rows_skipped}"
    )
    return result


def validate_csv_structure(file_path: str, expected_headers: Sequence[str], separator: str = ",") -> Dict[str, Any]:
    """
    Compare the header row of a CSV file against the expected headers.

    Only the header line is read.
    """
    headers = _read_header(file_path, separator)
    missing_headers = [header for header in expected_headers if header not in headers]
    extra_headers = [header for header in headers if header not in expected_headers]

    return {
        "valid": not missing_headers,
        "missing_headers": missing_headers,
        "extra_headers": extra_headers,
    }


def get_csv_stats(file_path: str, separator: str = ",") -> Dict[str, Any]:
    """
    Count rows and sample the first few without materializing the whole file.
    """
    headers = _read_header(file_path, separator)
    row_count = 0
    sample_rows: List[Dict[str, Any]] = []

    try:
        with pd.read_csv(
            file_path,
            sep=separator,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            chunksize=STATS_CHUNK_SIZE,
        ) as reader:
            for chunk in reader:
                chunk = chunk.rename(columns=lambda column: _sanitize_header(str(column)))
                if len(sample_rows) < SAMPLE_SIZE:
                    sample_rows.extend(chunk.head(SAMPLE_SIZE - len(sample_rows)).to_dict(orient="records"))
                row_count += len(chunk)
    except pd.errors.EmptyDataError:
        logger.warning(f"CSV file has no data: {file_path}")

    return {"row_count": row_count, "headers": headers, "sample_rows": sample_rows}


def detect_duplicates(file_path: str, unique_fields: Sequence[str], separator: str = ",") -> List[Dict[str, Any]]:
    """
    Report rows whose composite key was already seen.

    Returns:
        List of {"row", "data", "duplicate_of"} entries, where duplicate_of is the
        row number of the first occurrence
    """
    seen: Dict[str, int] = {}
    duplicates: List[Dict[str, Any]] = []

    for row_number, row in iter_csv_rows(file_path, CsvParseOptions(separator=separator)):
        key = "|".join(row.get(name) or "" for name in unique_fields)
        if key in seen:
            duplicates.append({"row": row_number, "data": row, "duplicate_of": seen[key]})
        else:
            seen[key] = row_number

    return duplicates
