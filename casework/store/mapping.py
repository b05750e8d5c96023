"""
Mapping between stored rows and typed domain records.

This is the only place that knows about column names, JSON-encoded lists and
the change-log envelope. Everything above it works with Case and Incident.
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from casework.models.domain import Case, ChangeLogEntry, Incident
from casework.models.enums import CaseStatus, IncidentStatus, OffenceCategory, Verdict

CHANGELOG_KEY = "changelog"


def format_timestamp(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="microseconds") if value else ""


def parse_timestamp(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _encode_list(values: List[str]) -> str:
    return json.dumps(list(values))


def _decode_list(raw: str) -> List[str]:
    if not raw:
        return []
    decoded = json.loads(raw)
    return [str(value) for value in decoded] if isinstance(decoded, list) else []


def _encode_changelog(entries: List[ChangeLogEntry], extra: Optional[Dict[str, Any]] = None) -> str:
    envelope = dict(extra or {})
    envelope[CHANGELOG_KEY] = [
        {
            "action": entry.action,
            "by": entry.actor,
            "at": format_timestamp(entry.timestamp),
            "changes": list(entry.changes),
        }
        for entry in entries
    ]
    return json.dumps(envelope)


def _decode_changelog(raw: str):
    """Split the metadata_changelog column into (entries, remaining metadata)."""
    envelope = json.loads(raw) if raw else {}
    entries = [
        ChangeLogEntry(
            action=item.get("action", ""),
            actor=item.get("by", ""),
            timestamp=parse_timestamp(item.get("at", "")),
            changes=list(item.get("changes", [])),
        )
        for item in envelope.pop(CHANGELOG_KEY, [])
    ]
    return entries, envelope


def case_to_fields(case: Case) -> Dict[str, str]:
    return {
        "case_id": case.case_id,
        "incident_id": case.incident_id,
        "reported_individual_id": case.reported_individual,
        "squad": case.squad,
        "campus": case.campus,
        "category_of_offence": case.category.value if case.category else "",
        "sub_category_of_offence": case.sub_category,
        "level_of_offence": str(case.level) if case.level is not None else "",
        "case_comments": case.comments,
        "attachments": _encode_list(case.attachments),
        "investigator_attachments": _encode_list(case.investigator_attachments),
        "approver_attachments": _encode_list(case.approver_attachments),
        "verdict": case.verdict.value,
        "punishment": case.punishment,
        "case_status": case.case_status.value,
        "verdict_recorded_at": format_timestamp(case.verdict_recorded_at),
        "appeal_reason": case.appeal_reason,
        "appeal_submitted_at": format_timestamp(case.appeal_submitted_at),
        "appeal_attachments": _encode_list(case.appeal_attachments),
        "review_comments": case.review_comments,
        "last_updated_by": case.last_updated_by,
        "last_updated_at": format_timestamp(case.last_updated_at),
        "metadata_changelog": _encode_changelog(case.change_log),
    }


def case_from_fields(fields: Dict[str, str]) -> Case:
    change_log, _ = _decode_changelog(fields.get("metadata_changelog", ""))
    category = fields.get("category_of_offence", "")
    level = fields.get("level_of_offence", "")
    return Case(
        case_id=fields["case_id"],
        incident_id=fields["incident_id"],
        reported_individual=fields.get("reported_individual_id", ""),
        squad=fields.get("squad", ""),
        campus=fields.get("campus", ""),
        category=OffenceCategory.parse(category) if category else None,
        sub_category=fields.get("sub_category_of_offence", ""),
        level=int(level) if level.strip().isdigit() else None,
        comments=fields.get("case_comments", ""),
        attachments=_decode_list(fields.get("attachments", "")),
        investigator_attachments=_decode_list(fields.get("investigator_attachments", "")),
        approver_attachments=_decode_list(fields.get("approver_attachments", "")),
        verdict=Verdict(fields.get("verdict", "")),
        punishment=fields.get("punishment", ""),
        case_status=CaseStatus(fields["case_status"]),
        verdict_recorded_at=parse_timestamp(fields.get("verdict_recorded_at", "")),
        appeal_reason=fields.get("appeal_reason", ""),
        appeal_submitted_at=parse_timestamp(fields.get("appeal_submitted_at", "")),
        appeal_attachments=_decode_list(fields.get("appeal_attachments", "")),
        review_comments=fields.get("review_comments", ""),
        last_updated_by=fields.get("last_updated_by", ""),
        last_updated_at=parse_timestamp(fields.get("last_updated_at", "")),
        change_log=change_log,
    )


def incident_to_fields(incident: Incident) -> Dict[str, str]:
    return {
        "incident_id": incident.incident_id,
        "complainant_id": incident.complainant,
        "complainant_category": incident.complainant_category,
        "date_time_of_incident": incident.occurred_at,
        "reported_on": format_timestamp(incident.reported_at),
        "description": incident.description,
        "attachments": _encode_list(incident.attachments),
        "status": incident.status.value,
        "last_updated_by": incident.last_updated_by,
        "last_updated_at": format_timestamp(incident.last_updated_at),
        # Relay metadata shares the column with the change-log, as it always has
        "metadata_changelog": _encode_changelog(incident.change_log, incident.metadata),
    }


def incident_from_fields(fields: Dict[str, str]) -> Incident:
    change_log, metadata = _decode_changelog(fields.get("metadata_changelog", ""))
    return Incident(
        incident_id=fields["incident_id"],
        complainant=fields.get("complainant_id", ""),
        complainant_category=fields.get("complainant_category", ""),
        occurred_at=fields.get("date_time_of_incident", ""),
        reported_at=parse_timestamp(fields.get("reported_on", "")),
        description=fields.get("description", ""),
        attachments=_decode_list(fields.get("attachments", "")),
        status=IncidentStatus(fields.get("status") or IncidentStatus.OPEN.value),
        last_updated_by=fields.get("last_updated_by", ""),
        last_updated_at=parse_timestamp(fields.get("last_updated_at", "")),
        metadata=metadata,
        change_log=change_log,
    )
