"""API routes for the incident and case workflow."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from casework.api.deps import Caller, get_caller, get_workflow
from casework.models.enums import CaseStatus, IncidentStatus
from casework.models.payloads import (
    AppealResolution,
    AppealSubmission,
    IncidentReport,
    InvestigationDraft,
    InvestigationEdit,
    InvestigationSubmission,
    ReportedIndividual,
    VerdictDecision,
)
from casework.services.errors import (
    CaseworkError,
    ConcurrentModification,
    IneligibleAppeal,
    InvalidTransition,
    NotFound,
    RefusalError,
    StoreUnavailable,
    ValidationError,
)
from casework.services.workflow import WorkflowService
from casework.api.schemas import (
    AppealCreate,
    AppealResolve,
    AttachmentsUpdate,
    CaseResponse,
    ClosureResponse,
    IncidentCreate,
    IncidentDetailResponse,
    IncidentResponse,
    InvestigationDraftIn,
    InvestigationEditIn,
    InvestigationSubmit,
    RefusalResponse,
    VerdictCreate,
)

router = APIRouter()

REFUSALS = {
    400: {"model": RefusalResponse, "description": "Missing or malformed input"},
    403: {"model": RefusalResponse, "description": "Refusal - role, ownership or appeal rule"},
    404: {"model": RefusalResponse, "description": "Case or incident not found"},
    409: {"model": RefusalResponse, "description": "Refusal - invalid transition or concurrent change"},
}


def _http_error(e: CaseworkError) -> HTTPException:
    """Translate a service error into the HTTP response the client sees."""
    detail = {"message": e.message}
    if isinstance(e, InvalidTransition):
        detail["current_status"] = e.current.value
        detail["attempted_status"] = e.attempted.value
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, IneligibleAppeal):
        detail["reason"] = e.reason.value
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, RefusalError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ValidationError):
        detail["field"] = e.field
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, ConcurrentModification):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, StoreUnavailable):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=detail)


# Incident endpoints
@router.post("/incidents", response_model=IncidentDetailResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_incident(
    incident_data: IncidentCreate,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """
    Report an incident. One case is opened per reported individual,
    each in Pending Investigation.
    """
    metadata = {}
    if incident_data.relayed_from_company:
        metadata = {
            "relayedFromCompany": True,
            "companyName": incident_data.company_name or "",
            "companyNotes": incident_data.company_notes or "",
        }
    report = IncidentReport(
        complainant_category=incident_data.complainant_category,
        occurred_at=incident_data.date_time_of_incident,
        description=incident_data.description,
        reported_individuals=[
            ReportedIndividual(email=r.email, squad=r.squad, campus=r.campus)
            for r in incident_data.reported_individuals
        ],
        attachments=incident_data.attachments,
        metadata=metadata,
    )
    try:
        incident, cases = workflow.report_incident(caller.email, report)
    except CaseworkError as e:
        raise _http_error(e)
    return {"incident": incident, "cases": cases}


@router.get("/incidents", response_model=List[IncidentResponse])
def list_incidents(
    mine: bool = False,
    incident_status: Optional[IncidentStatus] = None,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """List incidents, newest first. Non-staff callers only see their own reports."""
    try:
        return workflow.list_incidents(caller.email, caller.role, complainant_only=mine, status=incident_status)
    except CaseworkError as e:
        raise _http_error(e)


@router.get("/incidents/{incident_id}", response_model=IncidentDetailResponse, responses=REFUSALS)
def get_incident(
    incident_id: str,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Get an incident together with its cases."""
    try:
        incident, cases = workflow.get_incident(incident_id, caller.email, caller.role)
    except CaseworkError as e:
        raise _http_error(e)
    return {"incident": incident, "cases": cases}


@router.patch("/incidents/{incident_id}/attachments", response_model=IncidentResponse, responses=REFUSALS)
def update_incident_attachments(
    incident_id: str,
    attachments_data: AttachmentsUpdate,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """
    Replace the incident's attachments.
    Side effect: every case under the incident gets the same general attachments.
    """
    try:
        return workflow.update_incident_attachments(
            incident_id, caller.email, caller.role, attachments_data.attachments
        )
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/incidents/{incident_id}/check-closure", response_model=ClosureResponse, responses=REFUSALS)
def check_incident_closure(
    incident_id: str,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Close the incident if every case has reached Final Decision."""
    try:
        closed = workflow.check_incident_closure(incident_id)
    except CaseworkError as e:
        raise _http_error(e)
    return ClosureResponse(incident_id=incident_id, closed=closed)


# Case endpoints
@router.get("/cases", response_model=List[CaseResponse], responses=REFUSALS)
def list_cases(
    case_status: Optional[CaseStatus] = None,
    campus: Optional[str] = None,
    reported_individual: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """List cases for staff, optionally filtered."""
    try:
        return workflow.list_cases(
            caller.role, status=case_status, campus=campus, reported_individual=reported_individual
        )
    except CaseworkError as e:
        raise _http_error(e)


@router.get("/cases/mine", response_model=List[CaseResponse])
def my_cases(
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Cases where the caller is the reported individual."""
    try:
        return workflow.my_cases(caller.email)
    except CaseworkError as e:
        raise _http_error(e)


@router.get("/cases/{case_id}", response_model=CaseResponse, responses=REFUSALS)
def get_case(
    case_id: str,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    try:
        return workflow.get_case(case_id, caller.email, caller.role)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/investigation", response_model=CaseResponse, responses=REFUSALS)
def submit_investigation(
    case_id: str,
    investigation_data: InvestigationSubmit,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """
    Submit the investigation for approval.

    WILL REFUSE if:
    - Case is not Pending Investigation
    - Caller is not an investigator, campus manager or admin
    """
    submission = InvestigationSubmission(
        category=investigation_data.category,
        sub_category=investigation_data.sub_category,
        level=investigation_data.level,
        comments=investigation_data.comments,
        attachments=investigation_data.attachments,
    )
    try:
        return workflow.submit_investigation(case_id, caller.email, caller.role, submission)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/investigation/draft", response_model=CaseResponse, responses=REFUSALS)
def save_investigation_draft(
    case_id: str,
    draft_data: InvestigationDraftIn,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Save investigation details without submitting. Status is unchanged."""
    draft = InvestigationDraft(**draft_data.model_dump())
    try:
        return workflow.save_investigation_draft(case_id, caller.email, caller.role, draft)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/investigation/edit", response_model=CaseResponse, responses=REFUSALS)
def edit_investigation(
    case_id: str,
    edit_data: InvestigationEditIn,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Approver corrections to a submitted investigation. Status is unchanged."""
    edit = InvestigationEdit(**edit_data.model_dump())
    try:
        return workflow.edit_investigation(case_id, caller.email, caller.role, edit)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/request-more-investigation", response_model=CaseResponse, responses=REFUSALS)
def request_more_investigation(
    case_id: str,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Send a submitted investigation back to Pending Investigation."""
    try:
        return workflow.request_more_investigation(case_id, caller.email, caller.role)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/verdict", response_model=CaseResponse, responses=REFUSALS)
def record_verdict(
    case_id: str,
    verdict_data: VerdictCreate,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """
    Record the verdict on a submitted investigation.

    Not Guilty, and Guilty at a level too low to appeal, go straight to
    Final Decision. Everything else lands in Verdict Given.
    """
    decision = VerdictDecision(**verdict_data.model_dump())
    try:
        return workflow.record_verdict(case_id, caller.email, caller.role, decision)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/appeal", response_model=CaseResponse, responses=REFUSALS)
def submit_appeal(
    case_id: str,
    appeal_data: AppealCreate,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """
    Appeal a verdict.

    WILL REFUSE if:
    - Caller is not the reported individual
    - Case is not in Verdict Given, or the verdict is not Guilty
    - The offence is not severe enough to appeal
    - The appeal window has passed
    """
    appeal = AppealSubmission(reason=appeal_data.reason, attachments=appeal_data.attachments)
    try:
        return workflow.submit_appeal(case_id, caller.email, appeal)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/appeal/resolve", response_model=CaseResponse, responses=REFUSALS)
def resolve_appeal(
    case_id: str,
    resolution_data: AppealResolve,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Resolve an appeal. The case always ends in Final Decision."""
    resolution = AppealResolution(**resolution_data.model_dump())
    try:
        return workflow.resolve_appeal(case_id, caller.email, caller.role, resolution)
    except CaseworkError as e:
        raise _http_error(e)


@router.post("/cases/{case_id}/finalize", response_model=CaseResponse, responses=REFUSALS)
def finalize_verdict(
    case_id: str,
    caller: Caller = Depends(get_caller),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Move a verdict to Final Decision once it can no longer be appealed."""
    try:
        return workflow.finalize_verdict(case_id, caller.email, caller.role)
    except CaseworkError as e:
        raise _http_error(e)
