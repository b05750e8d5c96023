"""
Workflow operations.

Each operation reads current state, asks the lifecycle engine for a decision,
persists it through the repositories and then informs people. Refusals are
raised before anything is written. Incident closure and notifications run
after the write and never undo or fail it.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from casework.config import Settings, get_settings
from casework.models.domain import Case, Incident
from casework.models.enums import CaseStatus, IncidentStatus, NotificationKind, Role
from casework.models.payloads import (
    AppealResolution,
    AppealSubmission,
    IncidentReport,
    InvestigationDraft,
    InvestigationEdit,
    InvestigationSubmission,
    VerdictDecision,
)
from casework.repositories.cases import CaseRepository
from casework.repositories.incidents import IncidentRepository
from casework.services.errors import (
    CaseworkError,
    ConcurrentModification,
    Forbidden,
    RefusalError,
    ValidationError,
)
from casework.services.lifecycle import CaseLifecycle, Decision, should_close_incident
from casework.services.locks import NEW_INCIDENT_KEY, IncidentLocks, incident_locks
from casework.services.notifications import NotificationDispatcher, SmtpNotificationDispatcher
from casework.store.adapter import SqlRecordStore
from casework.utils import utcnow

logger = logging.getLogger(__name__)

INVESTIGATORS = frozenset({Role.INVESTIGATOR, Role.CAMPUS_MANAGER, Role.ADMIN})
APPROVERS = frozenset({Role.APPROVER, Role.ADMIN})
STAFF = frozenset({Role.INVESTIGATOR, Role.CAMPUS_MANAGER, Role.APPROVER, Role.ADMIN})
ATTACHMENT_EDITORS = frozenset({Role.INVESTIGATOR, Role.APPROVER, Role.ADMIN})

MIN_DESCRIPTION_LENGTH = 10


def _require_role(role: Role, allowed: frozenset, action: str) -> None:
    if role not in allowed:
        raise Forbidden(f"Forbidden - {role.value} cannot {action}")


def _same_person(a: str, b: str) -> bool:
    return bool(a) and a.strip().lower() == (b or "").strip().lower()


class WorkflowService:
    """Entry point for every mutation of incidents and cases."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        locks: Optional[IncidentLocks] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or get_settings()
        store = SqlRecordStore(db)
        self.cases = CaseRepository(store)
        self.incidents = IncidentRepository(store)
        self.lifecycle = CaseLifecycle(timedelta(days=self.settings.appeal_window_days))
        self.notifier = notifier or SmtpNotificationDispatcher(self.settings)
        self.locks = locks or incident_locks
        self.clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _retrying(self, what: str, attempt: Callable):
        """Run attempt, re-running it from a fresh read when the row changed underneath."""
        attempts = self.settings.max_write_attempts
        for number in range(1, attempts + 1):
            try:
                return attempt()
            except ConcurrentModification:
                if number == attempts:
                    logger.warning("%s still conflicting after %d attempts", what, attempts)
                    raise
                logger.warning("%s changed concurrently, retrying (%d/%d)", what, number, attempts)

    def _write_case(
        self,
        case_id: str,
        actor: str,
        decide: Callable[[Case, datetime], Decision],
        now: datetime,
    ) -> Tuple[Case, Case]:
        """Decide and write one case. Caller holds the incident lock."""
        def attempt():
            current = self.cases.fetch(case_id)
            decision = decide(current.record, now)
            return current.record, self.cases.apply(current, decision, actor, now)

        return self._retrying(f"Case {case_id}", attempt)

    def _mutate_case(
        self,
        case_id: str,
        actor: str,
        decide: Callable[[Case, datetime], Decision],
        now: Optional[datetime] = None,
    ) -> Tuple[Case, Case]:
        """Serialize on the parent incident, then decide and write. Returns (before, after)."""
        incident_id = self.cases.get(case_id).incident_id
        try:
            with self.locks.hold(incident_id):
                before, after = self._write_case(case_id, actor, decide, now or self.clock())
        except (RefusalError, ValidationError) as e:
            logger.warning("Case %s: request by %s rejected: %s", case_id, actor, e.message)
            raise
        if after.case_status != before.case_status:
            self._close_if_finished(after.incident_id)
        return before, after

    def _close_if_finished(self, incident_id: str) -> None:
        """Best-effort closure check. A failure here is logged, not raised."""
        try:
            self.check_incident_closure(incident_id)
        except CaseworkError:
            logger.exception("Closure check failed for incident %s", incident_id)

    def _discard_intake(self, incident: Incident, cases: List[Case]) -> None:
        """Undo a partially written intake so the report can be retried from scratch."""
        logger.warning(
            "Intake of incident %s failed after %d case(s), removing it", incident.incident_id, len(cases)
        )
        try:
            for case in cases:
                self.cases.discard(case.case_id)
            self.incidents.discard(incident.incident_id)
        except CaseworkError:
            logger.exception("Could not remove partial intake of incident %s", incident.incident_id)

    def _notify(self, recipients, kind: NotificationKind, payload: Dict) -> None:
        try:
            self.notifier.notify(recipients, kind, payload)
        except Exception:
            logger.exception("Notification %s failed", kind.value)

    def _notify_status(self, case: Case, attachments: Optional[List[str]] = None) -> None:
        payload = {
            "incident_id": case.incident_id,
            "case_id": case.case_id,
            "status": case.case_status.value,
            "verdict": case.verdict.value,
            "category": case.category.value if case.category else "",
            "sub_category": case.sub_category,
            "level": case.level,
            "attachments": list(attachments or []),
        }
        try:
            incident = self.incidents.get(case.incident_id)
            payload["description"] = incident.description
            payload["occurred_at"] = incident.occurred_at
        except CaseworkError:
            logger.warning("Incident %s unavailable for status email", case.incident_id)
        self._notify(case.reported_individual, NotificationKind.STATUS_UPDATE, payload)

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    def report_incident(self, actor: str, report: IncidentReport) -> Tuple[Incident, List[Case]]:
        """
        Record an incident and open one case per reported individual.

        Cases are never created for an incident after this call returns.
        """
        if len((report.description or "").strip()) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters", field="description"
            )
        if not report.reported_individuals:
            raise ValidationError(
                "At least one reported individual is required", field="reported_individuals"
            )
        seen = set()
        for individual in report.reported_individuals:
            email = (individual.email or "").strip().lower()
            if not email:
                raise ValidationError("Reported individual email is required", field="reported_individuals")
            if email in seen:
                raise ValidationError(
                    f"{individual.email} is reported more than once", field="reported_individuals"
                )
            seen.add(email)

        now = self.clock()
        with self.locks.hold(NEW_INCIDENT_KEY):
            incident = self.incidents.create(actor, report, now)

        cases = []
        with self.locks.hold(incident.incident_id):
            try:
                for individual in report.reported_individuals:
                    cases.append(self.cases.create(
                        incident.incident_id,
                        individual.email.strip(),
                        created_by=actor,
                        now=now,
                        squad=individual.squad,
                        campus=individual.campus,
                        attachments=report.attachments,
                    ))
            except CaseworkError:
                self._discard_intake(incident, cases)
                raise

        for case in cases:
            self._notify(case.reported_individual, NotificationKind.CASE_REPORTED, {
                "incident_id": incident.incident_id,
                "case_id": case.case_id,
                "description": incident.description,
                "occurred_at": incident.occurred_at,
                "attachments": incident.attachments,
            })
        return incident, cases

    def update_incident_attachments(
        self,
        incident_id: str,
        actor: str,
        role: Role,
        attachments: List[str],
    ) -> Incident:
        """
        Replace an incident's attachments and mirror them onto every case.

        Only each case's general attachment set is touched; investigator,
        approver and appeal attachments stay as they are.
        """
        attachments = list(attachments)
        with self.locks.hold(incident_id):
            current = self.incidents.fetch(incident_id)
            if role not in ATTACHMENT_EDITORS and not _same_person(current.record.complainant, actor):
                raise Forbidden("Forbidden - only the complainant or staff can update attachments")

            now = self.clock()
            incident = self._retrying(
                f"Incident {incident_id}",
                lambda: self.incidents.update(
                    self.incidents.fetch(incident_id), {"attachments": attachments}, actor, now
                ),
            )
            for case in self.cases.list_by_incident(incident_id):
                self._write_case(
                    case.case_id,
                    actor,
                    lambda _case, _now: Decision(changes={"attachments": list(attachments)}),
                    now,
                )
        return incident

    def check_incident_closure(self, incident_id: str) -> bool:
        """
        Close the incident once every case has reached Final Decision.

        Idempotent. Returns whether the incident is closed afterwards.
        """
        with self.locks.hold(incident_id):
            statuses = [c.case_status for c in self.cases.list_by_incident(incident_id)]
            if not should_close_incident(statuses):
                return self.incidents.get(incident_id).status == IncidentStatus.CLOSED
            self._retrying(
                f"Incident {incident_id}",
                lambda: self.incidents.close(incident_id, self.clock()),
            )
        return True

    def get_incident(self, incident_id: str, actor: str, role: Role) -> Tuple[Incident, List[Case]]:
        incident = self.incidents.get(incident_id)
        cases = self.cases.list_by_incident(incident_id)
        involved = _same_person(incident.complainant, actor) or any(
            _same_person(c.reported_individual, actor) for c in cases
        )
        if role not in STAFF and not involved:
            raise Forbidden("Forbidden - not involved in this incident")
        return incident, cases

    def list_incidents(
        self,
        actor: str,
        role: Role,
        complainant_only: bool = False,
        status: Optional[IncidentStatus] = None,
    ) -> List[Incident]:
        """Staff see every incident; everyone else sees the ones they reported."""
        complainant = actor if complainant_only or role not in STAFF else None
        return self.incidents.list(complainant=complainant, status=status)

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------

    def get_case(self, case_id: str, actor: str, role: Role) -> Case:
        case = self.cases.get(case_id)
        if role not in STAFF and not _same_person(case.reported_individual, actor):
            raise Forbidden("Forbidden - not your case")
        return case

    def list_cases(
        self,
        role: Role,
        status: Optional[CaseStatus] = None,
        campus: Optional[str] = None,
        reported_individual: Optional[str] = None,
    ) -> List[Case]:
        _require_role(role, STAFF, "list cases")
        return self.cases.list(status=status, campus=campus, reported_individual=reported_individual)

    def my_cases(self, actor: str) -> List[Case]:
        """Cases where the caller is the reported individual."""
        return self.cases.list(reported_individual=actor)

    def submit_investigation(
        self,
        case_id: str,
        actor: str,
        role: Role,
        submission: InvestigationSubmission,
    ) -> Case:
        """Pending Investigation -> Investigation Submitted."""
        _require_role(role, INVESTIGATORS, "submit investigations")
        _, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_investigation(c, submission)
        )
        return case

    def save_investigation_draft(
        self,
        case_id: str,
        actor: str,
        role: Role,
        draft: InvestigationDraft,
    ) -> Case:
        """Save investigation details without changing status."""
        _require_role(role, INVESTIGATORS, "save investigation drafts")
        _, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_draft(c, draft)
        )
        return case

    def edit_investigation(
        self,
        case_id: str,
        actor: str,
        role: Role,
        edit: InvestigationEdit,
    ) -> Case:
        """Approver corrections to a submitted investigation."""
        _require_role(role, APPROVERS, "edit investigations")
        _, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_edit(c, edit)
        )
        return case

    def request_more_investigation(self, case_id: str, actor: str, role: Role) -> Case:
        """Investigation Submitted -> Pending Investigation; the investigator is told."""
        _require_role(role, APPROVERS, "request further investigation")
        before, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_reinvestigation(c)
        )
        investigator = before.last_updated_by
        submitted = f"status_changed_to_{CaseStatus.INVESTIGATION_SUBMITTED.value}"
        for entry in reversed(before.change_log):
            if entry.action == submitted:
                investigator = entry.actor
                break
        self._notify(investigator, NotificationKind.REINVESTIGATION, {
            "incident_id": case.incident_id,
            "case_id": case.case_id,
            "requested_by": actor,
        })
        return case

    def record_verdict(
        self,
        case_id: str,
        actor: str,
        role: Role,
        decision: VerdictDecision,
    ) -> Case:
        """
        Record the approver's verdict.

        Low-severity and Not Guilty outcomes go straight to Final Decision;
        the rest land in Verdict Given and may be appealed.
        """
        _require_role(role, APPROVERS, "record verdicts")
        _, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_verdict(c, decision, now)
        )
        self._notify_status(case, decision.attachments)
        return case

    def submit_appeal(
        self,
        case_id: str,
        actor: str,
        appeal: AppealSubmission,
        now: Optional[datetime] = None,
    ) -> Case:
        """Verdict Given -> Appealed. Only the reported individual may appeal."""
        def decide(case: Case, when: datetime) -> Decision:
            if not _same_person(case.reported_individual, actor):
                raise Forbidden("Forbidden - only the reported individual can appeal")
            return self.lifecycle.decide_appeal(case, appeal, when)

        _, case = self._mutate_case(case_id, actor, decide, now)

        self._notify(actor, NotificationKind.APPEAL_CONFIRMATION, {
            "incident_id": case.incident_id,
            "case_id": case.case_id,
            "reason": case.appeal_reason,
            "attachments": case.appeal_attachments,
        })
        self._notify(self.settings.appeal_reviewers, NotificationKind.APPEAL_NOTIFICATION, {
            "incident_id": case.incident_id,
            "case_id": case.case_id,
            "submitted_by": actor,
            "reason": case.appeal_reason,
            "attachments": case.appeal_attachments,
        })
        return case

    def resolve_appeal(
        self,
        case_id: str,
        actor: str,
        role: Role,
        resolution: AppealResolution,
    ) -> Case:
        """Appealed -> Final Decision, whatever the outcome."""
        _require_role(role, APPROVERS, "resolve appeals")
        _, case = self._mutate_case(
            case_id, actor, lambda c, now: self.lifecycle.decide_appeal_resolution(c, resolution)
        )
        self._notify_status(case)
        return case

    def finalize_verdict(
        self,
        case_id: str,
        actor: str,
        role: Role,
        now: Optional[datetime] = None,
    ) -> Case:
        """Verdict Given -> Final Decision once no appeal can follow."""
        _require_role(role, APPROVERS, "finalize verdicts")
        _, case = self._mutate_case(
            case_id, actor, lambda c, when: self.lifecycle.decide_finalization(c, when), now
        )
        self._notify_status(case)
        return case
