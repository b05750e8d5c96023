"""Inputs to the workflow operations, already parsed into domain types."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from casework.models.enums import AppealOutcome, OffenceCategory, Verdict


@dataclass
class InvestigationSubmission:
    category: OffenceCategory
    sub_category: str
    level: int
    comments: str = ""
    attachments: List[str] = field(default_factory=list)


@dataclass
class InvestigationDraft:
    """Partial classification saved while the investigation is still open."""
    category: Optional[OffenceCategory] = None
    sub_category: Optional[str] = None
    level: Optional[int] = None
    comments: Optional[str] = None
    attachments: Optional[List[str]] = None


@dataclass
class InvestigationEdit:
    """Approver corrections to a submitted investigation. Unset fields are kept."""
    category: Optional[OffenceCategory] = None
    sub_category: Optional[str] = None
    level: Optional[int] = None
    comments: Optional[str] = None
    squad: Optional[str] = None
    campus: Optional[str] = None


@dataclass
class VerdictDecision:
    verdict: Verdict
    punishment: Optional[str] = None
    attachments: Optional[List[str]] = None
    revised_category: Optional[OffenceCategory] = None
    revised_sub_category: Optional[str] = None
    revised_level: Optional[int] = None


@dataclass
class AppealSubmission:
    reason: str
    attachments: List[str] = field(default_factory=list)


@dataclass
class AppealResolution:
    review_comments: str
    final_verdict: AppealOutcome
    revised_category: Optional[OffenceCategory] = None
    revised_sub_category: Optional[str] = None
    revised_level: Optional[int] = None
    punishment: Optional[str] = None


@dataclass
class ReportedIndividual:
    email: str
    squad: str = ""
    campus: str = ""


@dataclass
class IncidentReport:
    complainant_category: str
    occurred_at: str
    description: str
    reported_individuals: List[ReportedIndividual]
    attachments: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
