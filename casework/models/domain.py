"""
Typed domain records the lifecycle engine operates on.

These are plain structs. They know nothing about how rows are laid out in the
record store; conversion happens in casework.store.mapping only.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from casework.models.enums import (
    CaseStatus,
    IncidentStatus,
    OffenceCategory,
    Verdict,
)


@dataclass(frozen=True)
class ChangeLogEntry:
    """
    One audit trail entry.

    Invariants:
    - Once written, never edited or deleted
    - action is "created", "updated" or "status_changed_to_<Status>"
    """
    action: str
    actor: str
    timestamp: datetime
    changes: List[str] = field(default_factory=list)


@dataclass
class Incident:
    """
    A reported event. Parent of one or more Cases.

    Invariants:
    - status is Closed iff every Case under it is in Final Decision
    - change_log only ever grows
    """
    incident_id: str
    complainant: str
    complainant_category: str
    occurred_at: str
    reported_at: datetime
    description: str
    attachments: List[str] = field(default_factory=list)
    status: IncidentStatus = IncidentStatus.OPEN
    last_updated_by: str = ""
    last_updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    change_log: List[ChangeLogEntry] = field(default_factory=list)


@dataclass
class Case:
    """
    One reported individual's disciplinary track within an incident.

    Invariants:
    - Created in Pending Investigation
    - Status only changes through the workflow operations
    - No transition is valid once Final Decision is reached
    """
    case_id: str
    incident_id: str
    reported_individual: str
    squad: str = ""
    campus: str = ""
    category: Optional[OffenceCategory] = None
    sub_category: str = ""
    level: Optional[int] = None
    comments: str = ""
    attachments: List[str] = field(default_factory=list)
    investigator_attachments: List[str] = field(default_factory=list)
    approver_attachments: List[str] = field(default_factory=list)
    verdict: Verdict = Verdict.NONE
    punishment: str = ""
    case_status: CaseStatus = CaseStatus.PENDING_INVESTIGATION
    verdict_recorded_at: Optional[datetime] = None
    appeal_reason: str = ""
    appeal_attachments: List[str] = field(default_factory=list)
    appeal_submitted_at: Optional[datetime] = None
    review_comments: str = ""
    last_updated_by: str = ""
    last_updated_at: Optional[datetime] = None
    change_log: List[ChangeLogEntry] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return self.case_status == CaseStatus.FINAL_DECISION
