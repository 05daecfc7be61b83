"""
Tests for row transformation functions.
"""

import json
from datetime import datetime, timezone

import pytest

from app.models.case import CaseStatus
from app.models.case_csv import CaseCsvRow
from app.services.config_service import config_service
from app.services.row_transformer_service import (
    build_parties_payload,
    collect_case_type_code,
    collect_case_type_name,
    derive_case_number,
    derive_status,
    derive_total_activities,
    parse_boolean,
    parse_date_parts,
    parse_generic_date,
    parse_integer,
    transform_row,
)


def make_row(**values):
    return CaseCsvRow.model_validate(values)


class TestCoercion:
    """Test lenient value coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [("12", 12), (" 3 persons", 3), ("", 0), (None, 0), ("abc", 0), ("-4", -4), (7.9, 7), ("1,200", 1200)],
    )
    def test_parse_integer(self, value, expected):
        assert parse_integer(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [("yes", True), ("Y", True), ("TRUE", True), ("1", True), ("no", False), ("0", False), ("maybe", False),
         (None, False), (2, True), (0, False)],
    )
    def test_parse_boolean(self, value, expected):
        assert parse_boolean(value) is expected


class TestDates:
    """Test date triples and generic parsing."""

    def test_triple_with_month_label(self):
        assert parse_date_parts("5", "March", "2021") == datetime(2021, 3, 5, tzinfo=timezone.utc)

    def test_triple_month_case_insensitive(self):
        assert parse_date_parts("28", "FEB", "2019") == datetime(2019, 2, 28, tzinfo=timezone.utc)

    def test_unknown_month_falls_back_to_year(self):
        assert parse_date_parts("5", "xyz", "2021") == datetime(2021, 1, 1, tzinfo=timezone.utc)

    def test_empty_triple_is_none(self):
        assert parse_date_parts(None, None, None) is None

    def test_unparsable_triple_is_none(self):
        assert parse_date_parts("31", "feb", "abc") is None

    def test_generic_date_iso(self):
        assert parse_generic_date("2020-06-15") == datetime(2020, 6, 15, tzinfo=timezone.utc)

    def test_generic_date_garbage(self):
        assert parse_generic_date("not a date") is None


class TestDerivations:
    """Test per-row derived values."""

    @pytest.mark.parametrize(
        "outcome,expected",
        [("Case Dismissed", CaseStatus.RESOLVED), ("Hearing", CaseStatus.ACTIVE), ("", CaseStatus.ACTIVE),
         (None, CaseStatus.ACTIVE), ("Matter CLOSED", CaseStatus.RESOLVED), ("terminated", CaseStatus.RESOLVED)],
    )
    def test_derive_status(self, outcome, expected):
        assert derive_status(outcome) == expected

    def test_case_number_joins_segments(self):
        row = make_row(caseid_type="HCCC", caseid_no="101", filed_yyyy="2021")

        assert derive_case_number(row, 0) == "HCCC/101/2021"

    def test_case_number_year_fallbacks(self):
        assert derive_case_number(make_row(caseid_no="7", date_yyyy="2018"), 0) == "7/2018"
        assert derive_case_number(make_row(caseid_no="7", original_year="2015"), 0) == "7/2015"

    def test_case_number_unknown(self):
        assert derive_case_number(make_row(court="X"), 4) == "unknown-4"

    def test_total_activities_prefers_explicit(self):
        assert derive_total_activities(make_row(total_activities="3", comingfor="Mention")) == 3
        assert derive_total_activities(make_row(totalActivities="5")) == 5

    def test_total_activities_from_coming_for(self):
        assert derive_total_activities(make_row(comingfor="Mention")) == 1
        assert derive_total_activities(make_row()) == 0

    def test_parties_payload(self):
        row = make_row(male_applicant="2", organization_defendant="1 org")

        summary = json.loads(build_parties_payload(row))["summary"]

        assert summary == {
            "maleApplicant": 2,
            "femaleApplicant": 0,
            "organizationApplicant": 0,
            "maleDefendant": 0,
            "femaleDefendant": 0,
            "organizationDefendant": 1,
        }

    def test_case_type_code_and_name(self):
        row = make_row(case_type="Civil Suit", caseTypeName="Civil")

        assert collect_case_type_code(make_row(caseid_type="hccc", case_type="Civil")) == "HCCC"
        assert collect_case_type_code(row) == "CIVIL SUIT"
        assert collect_case_type_name(row) == "Civil Suit"
        assert collect_case_type_name(make_row(caseTypeName="Civil")) == "Civil"
        assert collect_case_type_code(make_row()) == ""


class TestTransformRow:
    """Test full row transformation."""

    def test_transform_complete_row(self, case_row):
        row = CaseCsvRow.model_validate(case_row(next_dd="1", next_mon="Apr", next_yyyy="2022", original_year="2019"))

        record = transform_row(row, 0, court_id="court-1", case_type_id="type-1", original_court_id="court-0")

        assert record["case_number"] == "HCCC/101/2021"
        assert record["court_id"] == "court-1"
        assert record["case_type_id"] == "type-1"
        assert record["original_court_id"] == "court-0"
        assert record["filed_date"] == datetime(2021, 3, 12, tzinfo=timezone.utc)
        assert record["next_activity_date"] == datetime(2022, 4, 1, tzinfo=timezone.utc)
        assert record["status"] == CaseStatus.ACTIVE
        assert record["has_legal_representation"] is True
        assert record["total_activities"] == 1
        assert record["female_defendant"] == 1
        assert record["organization_defendant"] == 1
        assert record["original_year"] == 2019
        assert record["caseid_type"] == "HCCC"

    def test_filed_date_uses_explicit_field(self):
        row = make_row(filedDate="2020-01-02")

        record = transform_row(row, 0, court_id="c", case_type_id="t")

        assert record["filed_date"] == datetime(2020, 1, 2, tzinfo=timezone.utc)

    def test_filed_date_defaults_to_now(self):
        config_service.set_setting("APP_NOW_MODE", "fake")
        config_service.set_setting("APP_FAKE_NOW", "2024-05-06")

        record = transform_row(make_row(), 2, court_id="c", case_type_id="t")

        assert record["filed_date"] == datetime(2024, 5, 6, tzinfo=timezone.utc)
        assert record["case_number"] == "unknown-2"
        assert record["next_activity_date"] is None
        assert record["original_year"] is None
        assert record["caseid_no"] is None
