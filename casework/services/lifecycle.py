"""
Case lifecycle engine.

This is the core enforcement mechanism - every status change MUST be decided here.
The engine is pure: it reads a Case and a proposed update and returns a
Decision, or raises a refusal. It never touches the store and never reads the
wall clock; callers pass `now` explicitly.
"""
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from casework.models.domain import Case
from casework.models.enums import (
    SUB_CATEGORIES,
    AppealOutcome,
    CaseStatus,
    IneligibilityReason,
    OffenceCategory,
    Verdict,
)
from casework.models.payloads import (
    AppealResolution,
    AppealSubmission,
    InvestigationDraft,
    InvestigationEdit,
    InvestigationSubmission,
    VerdictDecision,
)
from casework.services.errors import (
    IneligibleAppeal,
    InvalidTransition,
    RefusalError,
    ValidationError,
)

TRANSITIONS = {
    CaseStatus.PENDING_INVESTIGATION: frozenset({CaseStatus.INVESTIGATION_SUBMITTED}),
    CaseStatus.INVESTIGATION_SUBMITTED: frozenset({
        CaseStatus.VERDICT_GIVEN,
        CaseStatus.PENDING_INVESTIGATION,
        CaseStatus.FINAL_DECISION,
    }),
    CaseStatus.VERDICT_GIVEN: frozenset({CaseStatus.FINAL_DECISION, CaseStatus.APPEALED}),
    CaseStatus.APPEALED: frozenset({CaseStatus.FINAL_DECISION}),
    CaseStatus.FINAL_DECISION: frozenset(),
}

# Highest level per category that is closed straight after the verdict.
# Anything above it is appealable.
FINAL_WITHOUT_APPEAL_MAX_LEVEL = {
    OffenceCategory.STUDENT_CODE: 3,
    OffenceCategory.INTERNSHIP_CODE: 2,
}

MIN_LEVEL = 1
MAX_LEVEL = 4
MIN_APPEAL_REASON_LENGTH = 10


@dataclass
class Decision:
    """Accepted outcome of an operation: the fields to write and the resulting status."""
    changes: Dict[str, Any] = field(default_factory=dict)
    new_status: Optional[CaseStatus] = None

    @property
    def changed_fields(self):
        fields = list(self.changes)
        if self.new_status is not None:
            fields.append("case_status")
        return fields

    def apply(self, case: Case) -> Case:
        updated = dataclasses.replace(case, **self.changes)
        if self.new_status is not None:
            updated.case_status = self.new_status
        return updated


def can_transition(current: CaseStatus, target: CaseStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: CaseStatus, target: CaseStatus) -> None:
    """Raise InvalidTransition unless (current, target) is in the transition table."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def should_close_incident(statuses: Iterable[CaseStatus]) -> bool:
    """
    Closure rule.

    An incident closes once it has at least one case and every case is in
    Final Decision. An incident with no cases is never closed.
    """
    statuses = list(statuses)
    return bool(statuses) and all(s == CaseStatus.FINAL_DECISION for s in statuses)


def status_after_verdict(
    verdict: Verdict,
    category: Optional[OffenceCategory],
    level: Optional[int],
) -> CaseStatus:
    """
    Verdict-recording rule.

    Not Guilty always ends the case. A Guilty verdict at or below the category's
    threshold ends it too; severity, not guilt alone, opens the appeal stage.
    """
    if verdict == Verdict.NOT_GUILTY:
        return CaseStatus.FINAL_DECISION
    threshold = FINAL_WITHOUT_APPEAL_MAX_LEVEL.get(category)
    if threshold is not None and (level or 0) <= threshold:
        return CaseStatus.FINAL_DECISION
    return CaseStatus.VERDICT_GIVEN


def is_appealable_severity(category: Optional[OffenceCategory], level: Optional[int]) -> bool:
    """Student code needs level 4, internship code level 3. Other categories never qualify."""
    threshold = FINAL_WITHOUT_APPEAL_MAX_LEVEL.get(category)
    return threshold is not None and (level or 0) > threshold


def _validate_level(level: Optional[int], field_name: str = "level") -> None:
    if level is None:
        return
    if isinstance(level, bool) or not isinstance(level, int) or not MIN_LEVEL <= level <= MAX_LEVEL:
        raise ValidationError(
            f"Level of offence must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level!r}",
            field=field_name,
        )


def _validate_classification(
    category: Optional[OffenceCategory],
    sub_category: str,
    level: Optional[int],
) -> None:
    """Check the resulting classification is internally consistent."""
    _validate_level(level)
    if category is not None and sub_category and sub_category not in SUB_CATEGORIES[category]:
        raise ValidationError(
            f"'{sub_category}' is not a sub-category of {category.value}",
            field="sub_category",
        )


def _reclassify(
    case: Case,
    category: Optional[OffenceCategory] = None,
    sub_category: Optional[str] = None,
    level: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Changes for a partial reclassification.

    Unset fields keep their values. Only a supplied sub-category is checked
    against the resulting category; a kept sub-category that does not belong
    to a newly supplied category is cleared.
    """
    _validate_level(level)
    changes: Dict[str, Any] = {}
    if category is not None:
        changes["category"] = category
    if level is not None:
        changes["level"] = level

    resulting = changes.get("category", case.category)
    if sub_category:
        _validate_classification(resulting, sub_category, None)
        changes["sub_category"] = sub_category
    elif category is not None and case.sub_category and case.sub_category not in SUB_CATEGORIES[category]:
        changes["sub_category"] = ""
    return changes


class CaseLifecycle:
    """Decides status transitions, verdict outcomes and appeal eligibility."""

    def __init__(self, appeal_window: timedelta = timedelta(days=7)):
        self.appeal_window = appeal_window

    def appeal_deadline(self, case: Case) -> Optional[datetime]:
        """
        When the appeal window closes.

        Measured from the verdict. Records written before verdict_recorded_at
        existed fall back to the last update.
        """
        recorded_at = case.verdict_recorded_at or case.last_updated_at
        if recorded_at is None:
            return None
        return recorded_at + self.appeal_window

    def check_appeal_eligibility(self, case: Case, now: datetime) -> None:
        """
        Appeal-eligibility rule.

        Refusals, in the order they are checked:
        - wrong_status: the case is not in Verdict Given
        - not_guilty: the verdict is not Guilty
        - insufficient_severity: the level is below the category's appeal threshold
        - window_expired: the appeal window has closed
        """
        if case.case_status != CaseStatus.VERDICT_GIVEN:
            raise IneligibleAppeal(
                IneligibilityReason.WRONG_STATUS,
                f"REFUSAL: Appeals can only be submitted once a verdict is given. "
                f"Current status: {case.case_status.value}",
            )
        if case.verdict != Verdict.GUILTY:
            raise IneligibleAppeal(
                IneligibilityReason.NOT_GUILTY,
                "REFUSAL: Appeals can only be submitted for Guilty verdicts",
            )
        if not is_appealable_severity(case.category, case.level):
            if case.category == OffenceCategory.STUDENT_CODE:
                message = "REFUSAL: Appeals are only allowed for Level 4 offences in Student Code of Conduct"
            elif case.category == OffenceCategory.INTERNSHIP_CODE:
                message = "REFUSAL: Appeals are only allowed for Level 3 and 4 offences in Internship Code of Conduct"
            else:
                category = case.category.value if case.category else "unclassified offences"
                message = f"REFUSAL: Appeals are not available for {category}"
            raise IneligibleAppeal(IneligibilityReason.INSUFFICIENT_SEVERITY, message)

        deadline = self.appeal_deadline(case)
        if deadline is not None and now > deadline:
            raise IneligibleAppeal(
                IneligibilityReason.WINDOW_EXPIRED,
                f"REFUSAL: The appeal window closed on {deadline.isoformat(timespec='minutes')}",
            )

    def decide_investigation(self, case: Case, submission: InvestigationSubmission) -> Decision:
        """Pending Investigation -> Investigation Submitted with the investigator's classification."""
        validate_transition(case.case_status, CaseStatus.INVESTIGATION_SUBMITTED)
        if submission.category is None:
            raise ValidationError("Category of offence is required", field="category")
        if not (submission.sub_category or "").strip():
            raise ValidationError("Sub-category of offence is required", field="sub_category")
        if submission.level is None:
            raise ValidationError("Level of offence is required", field="level")
        _validate_classification(submission.category, submission.sub_category, submission.level)

        return Decision(
            changes={
                "category": submission.category,
                "sub_category": submission.sub_category,
                "level": submission.level,
                "comments": submission.comments or "",
                "investigator_attachments": list(submission.attachments or []),
            },
            new_status=CaseStatus.INVESTIGATION_SUBMITTED,
        )

    def decide_draft(self, case: Case, draft: InvestigationDraft) -> Decision:
        """Save classification without submitting. Only while the investigation is open."""
        if case.case_status != CaseStatus.PENDING_INVESTIGATION:
            raise RefusalError(
                f"REFUSAL: Drafts can only be saved while the case is Pending Investigation. "
                f"Current status: {case.case_status.value}"
            )
        changes = _reclassify(case, draft.category, draft.sub_category, draft.level)
        if draft.sub_category == "":
            changes["sub_category"] = ""
        if draft.comments is not None:
            changes["comments"] = draft.comments
        if draft.attachments is not None:
            changes["investigator_attachments"] = list(draft.attachments)
        return Decision(changes=changes)

    def decide_edit(self, case: Case, edit: InvestigationEdit) -> Decision:
        """Approver corrections. Only a submitted, not yet decided investigation can be edited."""
        if case.case_status != CaseStatus.INVESTIGATION_SUBMITTED:
            raise RefusalError(
                f"REFUSAL: Only submitted investigations can be edited. "
                f"Current status: {case.case_status.value}"
            )
        changes = _reclassify(case, edit.category, edit.sub_category, edit.level)
        for name in ("comments", "squad", "campus"):
            value = getattr(edit, name)
            if value is not None:
                changes[name] = value
        return Decision(changes=changes)

    def decide_reinvestigation(self, case: Case) -> Decision:
        """Investigation Submitted -> Pending Investigation."""
        validate_transition(case.case_status, CaseStatus.PENDING_INVESTIGATION)
        return Decision(new_status=CaseStatus.PENDING_INVESTIGATION)

    def decide_verdict(self, case: Case, decision: VerdictDecision, now: datetime) -> Decision:
        """
        Record the approver's verdict.

        The resulting status follows the verdict-recording rule applied to the
        revised classification when one is supplied.
        """
        if decision.verdict not in (Verdict.GUILTY, Verdict.NOT_GUILTY):
            raise ValidationError("Verdict must be Guilty or Not Guilty", field="verdict")

        category = decision.revised_category or case.category
        level = decision.revised_level if decision.revised_level is not None else case.level
        target = status_after_verdict(decision.verdict, category, level)

        if case.case_status != CaseStatus.INVESTIGATION_SUBMITTED:
            raise InvalidTransition(
                case.case_status,
                target,
                f"REFUSAL: A verdict can only be recorded on a submitted investigation. "
                f"Current status: {case.case_status.value}",
            )
        validate_transition(case.case_status, target)

        if category is None:
            raise ValidationError("Case has no offence category", field="category")
        reclassified = _reclassify(
            case, decision.revised_category, decision.revised_sub_category, decision.revised_level
        )

        punishment = (decision.punishment or "").strip()
        if decision.verdict == Verdict.GUILTY and not punishment:
            raise ValidationError("Punishment is required for a Guilty verdict", field="punishment")

        changes = {
            "verdict": decision.verdict,
            "punishment": punishment if decision.verdict == Verdict.GUILTY else "",
            "approver_attachments": list(decision.attachments or []),
            "verdict_recorded_at": now,
            **reclassified,
        }

        return Decision(changes=changes, new_status=target)

    def decide_appeal(self, case: Case, appeal: AppealSubmission, now: datetime) -> Decision:
        """Verdict Given -> Appealed, if the appeal-eligibility rule allows it."""
        self.check_appeal_eligibility(case, now)
        if len((appeal.reason or "").strip()) < MIN_APPEAL_REASON_LENGTH:
            raise ValidationError(
                f"Appeal reason must be at least {MIN_APPEAL_REASON_LENGTH} characters",
                field="reason",
            )
        validate_transition(case.case_status, CaseStatus.APPEALED)

        return Decision(
            changes={
                "appeal_reason": appeal.reason.strip(),
                "appeal_attachments": list(appeal.attachments or []),
                "appeal_submitted_at": now,
            },
            new_status=CaseStatus.APPEALED,
        )

    def decide_appeal_resolution(self, case: Case, resolution: AppealResolution) -> Decision:
        """
        Appeal-resolution rule.

        Always ends in Final Decision:
        - Overturn to Not Guilty clears the punishment
        - Modify Level applies whichever revised fields are supplied
        - Uphold Original leaves the classification alone
        """
        if case.case_status != CaseStatus.APPEALED:
            raise InvalidTransition(
                case.case_status,
                CaseStatus.FINAL_DECISION,
                f"REFUSAL: Only appealed cases can be resolved. Current status: {case.case_status.value}",
            )
        if not (resolution.review_comments or "").strip():
            raise ValidationError("Review comments are required", field="review_comments")

        changes: Dict[str, Any] = {"review_comments": resolution.review_comments.strip()}

        if resolution.final_verdict == AppealOutcome.OVERTURN_TO_NOT_GUILTY:
            changes["verdict"] = Verdict.NOT_GUILTY
            changes["punishment"] = ""
        else:
            if resolution.final_verdict == AppealOutcome.MODIFY_LEVEL:
                changes.update(_reclassify(
                    case,
                    resolution.revised_category,
                    resolution.revised_sub_category,
                    resolution.revised_level,
                ))
            if resolution.punishment:
                changes["punishment"] = resolution.punishment.strip()

        return Decision(changes=changes, new_status=CaseStatus.FINAL_DECISION)

    def decide_finalization(self, case: Case, now: datetime) -> Decision:
        """
        Verdict Given -> Final Decision once no appeal can follow.

        Refused while the case is appealable and its window is still open.
        """
        if case.case_status != CaseStatus.VERDICT_GIVEN:
            raise InvalidTransition(
                case.case_status,
                CaseStatus.FINAL_DECISION,
                f"REFUSAL: Only cases in Verdict Given can be finalized. Current status: {case.case_status.value}",
            )
        appealable = case.verdict == Verdict.GUILTY and is_appealable_severity(case.category, case.level)
        deadline = self.appeal_deadline(case)
        if appealable and (deadline is None or now <= deadline):
            raise RefusalError(
                "REFUSAL: The appeal window is still open"
                + (f" until {deadline.isoformat(timespec='minutes')}" if deadline else "")
            )
        return Decision(new_status=CaseStatus.FINAL_DECISION)
