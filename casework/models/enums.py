"""Enums for the casework system - these define the valid values for statuses, verdicts and categories."""
from enum import Enum


class CaseStatus(str, Enum):
    """The five states a Case can be in. No other states are allowed."""
    PENDING_INVESTIGATION = "Pending Investigation"
    INVESTIGATION_SUBMITTED = "Investigation Submitted"
    VERDICT_GIVEN = "Verdict Given"
    APPEALED = "Appealed"
    FINAL_DECISION = "Final Decision"


class IncidentStatus(str, Enum):
    """Derived closure status of an incident."""
    OPEN = "Open"
    CLOSED = "Closed"


class Verdict(str, Enum):
    """Approver finding. NONE until a verdict is recorded."""
    NONE = ""
    GUILTY = "Guilty"
    NOT_GUILTY = "Not Guilty"


class OffenceCategory(str, Enum):
    """Code of conduct an offence is classified under."""
    STUDENT_CODE = "Breach of student code of conduct"
    INTERNSHIP_CODE = "Breach of internship code of conduct"
    MENTOR_CODE = "Breach of mentor code of conduct"

    @classmethod
    def parse(cls, value: str) -> "OffenceCategory":
        """Accept the stored display value or its short alias ("student code")."""
        text = value.strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.short_name):
                return member
        raise ValueError(f"Unknown offence category: {value!r}")

    @property
    def short_name(self) -> str:
        return {
            OffenceCategory.STUDENT_CODE: "student code",
            OffenceCategory.INTERNSHIP_CODE: "internship code",
            OffenceCategory.MENTOR_CODE: "mentor code",
        }[self]


class AppealOutcome(str, Enum):
    """Final verdict an approver hands down when resolving an appeal."""
    UPHOLD_ORIGINAL = "Uphold Original"
    OVERTURN_TO_NOT_GUILTY = "Overturn to Not Guilty"
    MODIFY_LEVEL = "Modify Level"


class IneligibilityReason(str, Enum):
    """Why an appeal was refused."""
    WRONG_STATUS = "wrong_status"
    NOT_GUILTY = "not_guilty"
    INSUFFICIENT_SEVERITY = "insufficient_severity"
    WINDOW_EXPIRED = "window_expired"


class Role(str, Enum):
    """Effective role of the caller for a single request."""
    STUDENT = "student"
    INVESTIGATOR = "investigator"
    CAMPUS_MANAGER = "campus manager"
    APPROVER = "approver"
    ADMIN = "admin"


class NotificationKind(str, Enum):
    """Email templates the dispatcher knows how to render."""
    CASE_REPORTED = "case_reported"
    STATUS_UPDATE = "status_update"
    APPEAL_CONFIRMATION = "appeal_confirmation"
    APPEAL_NOTIFICATION = "appeal_notification"
    REINVESTIGATION = "reinvestigation"


# Sub-categories allowed under each offence category
SUB_CATEGORIES = {
    OffenceCategory.STUDENT_CODE: (
        "Behavioral Misconduct",
        "Property and Resource Misuse",
        "Academic Integrity Violation",
        "Substance Abuse and Prohibited Activities",
        "Safety and Security Violations",
    ),
    OffenceCategory.INTERNSHIP_CODE: (
        "Professional Conduct and Workplace Behaviour",
        "Attendance and Commitment",
        "Confidentiality and Information Security",
        "Unauthorised Use of Company Resources",
        "Legal and Ethical Violations",
    ),
    OffenceCategory.MENTOR_CODE: ("Fraternization",),
}
