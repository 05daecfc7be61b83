"""
Court, case type and case models.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.import_models import new_id


class CourtType(str, Enum):
    SC = "SC"
    ELC = "ELC"
    ELRC = "ELRC"
    KC = "KC"
    SCC = "SCC"
    COA = "COA"
    MC = "MC"
    HC = "HC"
    TC = "TC"


class CaseStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"
    PENDING = "PENDING"
    TRANSFERRED = "TRANSFERRED"
    DELETED = "DELETED"


class CustodyStatus(str, Enum):
    IN_CUSTODY = "IN_CUSTODY"
    ON_BAIL = "ON_BAIL"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class Court(SQLModel, table=True):
    """Court model."""

    __tablename__ = "courts"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    court_name: str = Field(max_length=255, index=True)
    court_code: str = Field(max_length=40, unique=True, index=True)
    court_type: CourtType = Field(default=CourtType.TC)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CaseType(SQLModel, table=True):
    """Case type model."""

    __tablename__ = "case_types"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    case_type_name: str = Field(max_length=255)
    case_type_code: str = Field(max_length=100, unique=True, index=True)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Judge(SQLModel, table=True):
    """Judge model (referenced by activities and assignments)."""

    __tablename__ = "judges"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    full_name: str = Field(max_length=255, index=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Case(SQLModel, table=True):
    """Case record. Unique per (case_number, court_id)."""

    __tablename__ = "cases"
    __table_args__ = (UniqueConstraint("case_number", "court_id", name="uq_cases_case_number_court"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    case_number: str = Field(max_length=255, index=True)
    court_id: str = Field(foreign_key="courts.id")
    original_court_id: Optional[str] = Field(default=None, foreign_key="courts.id")
    case_type_id: str = Field(foreign_key="case_types.id")
    filed_date: datetime = Field()
    original_case_number: Optional[str] = Field(default=None, max_length=255)
    original_year: Optional[int] = Field(default=None)
    parties: str = Field(default="{}", sa_column=Column(Text, nullable=False, default="{}"))  # JSON summary
    status: CaseStatus = Field(default=CaseStatus.ACTIVE)
    next_activity_date: Optional[datetime] = Field(default=None)
    total_activities: int = Field(default=0)
    has_legal_representation: bool = Field(default=False)
    caseid_type: Optional[str] = Field(default=None, max_length=50)
    caseid_no: Optional[str] = Field(default=None, max_length=50)
    male_applicant: int = Field(default=0)
    female_applicant: int = Field(default=0)
    organization_applicant: int = Field(default=0)
    male_defendant: int = Field(default=0)
    female_defendant: int = Field(default=0)
    organization_defendant: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CaseActivity(SQLModel, table=True):
    """Hearing/activity recorded against a case."""

    __tablename__ = "case_activities"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    case_id: str = Field(foreign_key="cases.id", index=True)
    activity_date: datetime = Field()
    activity_type: str = Field(max_length=100)
    outcome: str = Field(max_length=255)
    reason_for_adjournment: Optional[str] = Field(default=None, max_length=500)
    next_hearing_date: Optional[datetime] = Field(default=None)
    primary_judge_id: Optional[str] = Field(default=None, foreign_key="judges.id")
    has_legal_representation: bool = Field(default=False)
    applicant_witnesses: int = Field(default=0)
    defendant_witnesses: int = Field(default=0)
    custody_status: CustodyStatus = Field(default=CustodyStatus.NOT_APPLICABLE)
    details: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    coming_for: Optional[str] = Field(default=None, max_length=255)
    import_batch_id: Optional[str] = Field(default=None, foreign_key="daily_import_batches.id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CaseJudgeAssignment(SQLModel, table=True):
    """Judge assigned to a case."""

    __tablename__ = "case_judge_assignments"

    case_id: str = Field(foreign_key="cases.id", primary_key=True)
    judge_id: str = Field(foreign_key="judges.id", primary_key=True)
    assigned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_primary: bool = Field(default=False)
