"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casework.models.enums import (
    AppealOutcome,
    CaseStatus,
    IncidentStatus,
    IneligibilityReason,
    OffenceCategory,
    Verdict,
)


def _parse_category(value):
    if value is None or isinstance(value, OffenceCategory):
        return value
    return OffenceCategory.parse(str(value))


# Incident schemas
class ReportedIndividualIn(BaseModel):
    email: str = Field(..., min_length=3)
    squad: str = ""
    campus: str = ""


class IncidentCreate(BaseModel):
    complainant_category: str = "other"
    date_time_of_incident: str
    description: str = Field(..., min_length=10)
    attachments: List[str] = []
    reported_individuals: List[ReportedIndividualIn] = Field(..., min_length=1)
    relayed_from_company: bool = False
    company_name: Optional[str] = None
    company_notes: Optional[str] = None


class AttachmentsUpdate(BaseModel):
    attachments: List[str]


class ChangeLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    actor: str
    timestamp: datetime
    changes: List[str]


class IncidentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    incident_id: str
    complainant: str
    complainant_category: str
    occurred_at: str
    reported_at: datetime
    description: str
    attachments: List[str]
    status: IncidentStatus
    last_updated_by: str
    last_updated_at: Optional[datetime]
    metadata: Dict[str, Any]
    change_log: List[ChangeLogEntryResponse]


# Case schemas
class CaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    case_id: str
    incident_id: str
    reported_individual: str
    squad: str
    campus: str
    category: Optional[OffenceCategory]
    sub_category: str
    level: Optional[int]
    comments: str
    attachments: List[str]
    investigator_attachments: List[str]
    approver_attachments: List[str]
    verdict: Verdict
    punishment: str
    case_status: CaseStatus
    verdict_recorded_at: Optional[datetime]
    appeal_reason: str
    appeal_attachments: List[str]
    appeal_submitted_at: Optional[datetime]
    review_comments: str
    last_updated_by: str
    last_updated_at: Optional[datetime]
    change_log: List[ChangeLogEntryResponse]


class IncidentDetailResponse(BaseModel):
    incident: IncidentResponse
    cases: List[CaseResponse]


class ClosureResponse(BaseModel):
    incident_id: str
    closed: bool


class InvestigationSubmit(BaseModel):
    category: OffenceCategory
    sub_category: str = Field(..., min_length=1)
    level: int = Field(..., ge=1, le=4)
    comments: str = ""
    attachments: List[str] = []

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, value):
        return _parse_category(value)


class InvestigationDraftIn(BaseModel):
    category: Optional[OffenceCategory] = None
    sub_category: Optional[str] = None
    level: Optional[int] = Field(None, ge=1, le=4)
    comments: Optional[str] = None
    attachments: Optional[List[str]] = None

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, value):
        return _parse_category(value)


class InvestigationEditIn(BaseModel):
    category: Optional[OffenceCategory] = None
    sub_category: Optional[str] = None
    level: Optional[int] = Field(None, ge=1, le=4)
    comments: Optional[str] = None
    squad: Optional[str] = None
    campus: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, value):
        return _parse_category(value)


class VerdictCreate(BaseModel):
    verdict: Verdict
    punishment: Optional[str] = None
    attachments: Optional[List[str]] = None
    revised_category: Optional[OffenceCategory] = None
    revised_sub_category: Optional[str] = None
    revised_level: Optional[int] = Field(None, ge=1, le=4)

    @field_validator("revised_category", mode="before")
    @classmethod
    def parse_category(cls, value):
        return _parse_category(value)


class AppealCreate(BaseModel):
    reason: str = Field(..., min_length=10)
    attachments: List[str] = []


class AppealResolve(BaseModel):
    review_comments: str = Field(..., min_length=1)
    final_verdict: AppealOutcome
    revised_category: Optional[OffenceCategory] = None
    revised_sub_category: Optional[str] = None
    revised_level: Optional[int] = Field(None, ge=1, le=4)
    punishment: Optional[str] = None

    @field_validator("revised_category", mode="before")
    @classmethod
    def parse_category(cls, value):
        return _parse_category(value)


# Error responses
class RefusalResponse(BaseModel):
    """Response when an action is refused."""
    message: str
    current_status: Optional[CaseStatus] = None
    attempted_status: Optional[CaseStatus] = None
    reason: Optional[IneligibilityReason] = None
    field: Optional[str] = None
