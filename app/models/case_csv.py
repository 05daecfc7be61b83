"""
Typed CSV row for case imports.

Every recognized source column is an optional, trimmed string. Unknown columns are
ignored rather than rejected.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CaseCsvRow(BaseModel):
    """One row of a case export file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Case identity
    caseid_type: Optional[str] = None
    caseid_no: Optional[str] = None

    # Filing date triple
    filed_dd: Optional[str] = None
    filed_mon: Optional[str] = None
    filed_yyyy: Optional[str] = None
    filed_date: Optional[str] = Field(default=None, alias="filedDate")

    # Activity date / next hearing triples
    date_dd: Optional[str] = None
    date_mon: Optional[str] = None
    date_yyyy: Optional[str] = None
    next_dd: Optional[str] = None
    next_mon: Optional[str] = None
    next_yyyy: Optional[str] = None

    # Reference entities
    court: Optional[str] = None
    case_type: Optional[str] = None
    case_type_label: Optional[str] = Field(default=None, alias="caseType")
    case_type_name: Optional[str] = Field(default=None, alias="caseTypeName")
    case_type_id: Optional[str] = Field(default=None, alias="caseTypeId")

    outcome: Optional[str] = None
    legalrep: Optional[str] = None
    comingfor: Optional[str] = None
    total_activities: Optional[str] = None
    activity_total: Optional[str] = Field(default=None, alias="totalActivities")

    # Parties
    male_applicant: Optional[str] = None
    female_applicant: Optional[str] = None
    organization_applicant: Optional[str] = None
    male_defendant: Optional[str] = None
    female_defendant: Optional[str] = None
    organization_defendant: Optional[str] = None

    # Transfers from another court
    original_court: Optional[str] = None
    original_code: Optional[str] = None
    original_number: Optional[str] = None
    original_year: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if value != value:  # NaN
                return None
            return str(int(value)) if value.is_integer() else str(value)
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value
