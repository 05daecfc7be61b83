"""
Tests for the streaming CSV parser.
"""

import pytest
from pydantic import BaseModel

from app.models.case_csv import CaseCsvRow
from app.services.csv_parser_service import (
    CsvParseOptions,
    CsvValidationError,
    detect_duplicates,
    get_csv_stats,
    iter_csv_rows,
    parse_csv_file,
    validate_csv_structure,
)


class PersonRow(BaseModel):
    name: str
    age: int


@pytest.fixture
def people_csv(tmp_path):
    def _write(text, name="people.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


class TestParseCsvFile:
    """Test parse_csv_file."""

    def test_parses_rows_and_headers(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,41\n")

        result = parse_csv_file(path)

        assert result.headers == ["name", "age"]
        assert result.data == [{"name": "ann", "age": "30"}, {"name": "bob", "age": "41"}]
        assert result.total_rows == 2
        assert result.successful_rows == 2
        assert result.failed_rows == 0

    def test_strips_bom_and_header_whitespace(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes("\ufeff name , age \nann,30\n".encode("utf-8"))

        result = parse_csv_file(str(path))

        assert result.headers == ["name", "age"]
        assert result.data == [{"name": "ann", "age": "30"}]

    def test_skips_empty_rows(self, people_csv):
        path = people_csv("name,age\nann,30\n,\n , \nbob,41\n")

        result = parse_csv_file(path)

        assert result.total_rows == 4
        assert result.empty_rows_skipped == 2
        assert [row["name"] for row in result.data] == ["ann", "bob"]
        assert result.row_numbers == [1, 4]

    def test_keeps_empty_rows_when_asked(self, people_csv):
        path = people_csv("name,age\nann,30\n,\n")

        result = parse_csv_file(path, CsvParseOptions(skip_empty_rows=False))

        assert result.empty_rows_skipped == 0
        assert len(result.data) == 2

    def test_validation_errors_collected(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,abc\ncid,7\n")

        result = parse_csv_file(path, CsvParseOptions(validation_schema=PersonRow))

        assert result.successful_rows == 2
        assert result.failed_rows == 1
        error = result.errors[0]
        assert error.row == 2
        assert error.field == "age"
        assert error.error.startswith("age: ")
        assert error.data == {"name": "bob", "age": "abc"}
        assert all(isinstance(row, PersonRow) for row in result.data)

    def test_stop_on_first_validation_error(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,abc\ncid,nope\n")

        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv_file(path, CsvParseOptions(validation_schema=PersonRow, continue_on_error=False))

        assert str(exc_info.value).startswith("CSV validation failed at row 2: age: ")
        assert exc_info.value.row_number == 2

    def test_max_rows_truncates_with_warning(self, people_csv):
        path = people_csv("name,age\na,1\nb,2\nc,3\nd,4\n")

        result = parse_csv_file(path, CsvParseOptions(max_rows=2))

        assert result.total_rows == 2
        assert [row["name"] for row in result.data] == ["a", "b"]
        assert result.warnings == ["Maximum row limit of 2 reached. Remaining rows not processed."]

    def test_no_warning_when_file_fits(self, people_csv):
        path = people_csv("name,age\na,1\nb,2\n")

        result = parse_csv_file(path, CsvParseOptions(max_rows=2))

        assert result.warnings == []

    def test_explicit_headers_without_header_row(self, people_csv):
        path = people_csv("ann;30\nbob;41\n")

        result = parse_csv_file(path, CsvParseOptions(headers=["name", "age"], separator=";"))

        assert result.headers == ["name", "age"]
        assert result.data[0] == {"name": "ann", "age": "30"}
        assert result.total_rows == 2

    def test_case_rows_ignore_unknown_columns(self, people_csv):
        path = people_csv("caseid_type,caseid_no,mystery\n HCCC ,101,x\n")

        result = parse_csv_file(path, CsvParseOptions(validation_schema=CaseCsvRow))

        row = result.data[0]
        assert isinstance(row, CaseCsvRow)
        assert row.caseid_type == "HCCC"
        assert not hasattr(row, "mystery")


class TestIterCsvRows:
    """Test the lazy row generator."""

    def test_yields_numbered_rows(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,41\n")

        assert list(iter_csv_rows(path)) == [(1, {"name": "ann", "age": "30"}), (2, {"name": "bob", "age": "41"})]

    def test_restart_by_calling_again(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,41\n")

        rows = iter_csv_rows(path)
        next(rows)
        rows.close()

        assert len(list(iter_csv_rows(path))) == 2

    def test_surplus_values_dropped(self, people_csv):
        path = people_csv("name,age\nann,30,extra\n")

        assert list(iter_csv_rows(path)) == [(1, {"name": "ann", "age": "30"})]


class TestCsvHelpers:
    """Test structure validation, statistics and duplicate detection."""

    def test_validate_structure(self, people_csv):
        path = people_csv("name,age,city\nann,30,x\n")

        result = validate_csv_structure(path, ["name", "age", "email"])

        assert result == {"valid": False, "missing_headers": ["email"], "extra_headers": ["city"]}

    def test_validate_structure_ok(self, people_csv):
        path = people_csv("name,age\n")

        assert validate_csv_structure(path, ["name", "age"])["valid"] is True

    def test_stats_count_rows_and_sample_five(self, people_csv):
        body = "".join(f"p{i},{i}\n" for i in range(12))
        path = people_csv("name,age\n" + body)

        stats = get_csv_stats(path)

        assert stats["row_count"] == 12
        assert stats["headers"] == ["name", "age"]
        assert stats["sample_rows"] == [{"name": f"p{i}", "age": str(i)} for i in range(5)]

    def test_stats_header_only(self, people_csv):
        path = people_csv("name,age\n")

        stats = get_csv_stats(path)

        assert stats["row_count"] == 0
        assert stats["sample_rows"] == []

    def test_detect_duplicates(self, people_csv):
        path = people_csv("name,age\nann,30\nbob,41\nann,30\nann,31\nann,30\n")

        duplicates = detect_duplicates(path, ["name", "age"])

        assert [(d["row"], d["duplicate_of"]) for d in duplicates] == [(3, 1), (5, 1)]
        assert duplicates[0]["data"] == {"name": "ann", "age": "30"}
