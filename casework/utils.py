"""Id generation and change-log helpers shared by the repositories."""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from casework.models.domain import ChangeLogEntry
from casework.models.enums import CaseStatus

INCIDENT_PREFIX = "INC"
CASE_PREFIX = "CASE"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored timestamp takes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def incident_suffix(incident_id: str) -> str:
    """
    Derive the part of an incident id embedded in its case ids.

    Standard ids are INC + 4-digit year + 4-digit sequence (INC20250001), and
    contribute the 8 digits after INC. Anything else contributes its last 8
    characters.
    """
    tail = incident_id[len(INCIDENT_PREFIX):]
    if incident_id.startswith(INCIDENT_PREFIX) and len(incident_id) == 11 and tail.isdigit():
        return tail
    return incident_id[-8:]


def case_id_prefix(incident_id: str) -> str:
    return f"{CASE_PREFIX}-{incident_suffix(incident_id)}-"


def incident_id_prefix(year: int) -> str:
    return f"{INCIDENT_PREFIX}{year:04d}"


def max_sequence(ids: Iterable[str], prefix: str) -> int:
    """Largest numeric suffix among ids sharing prefix; 0 when there are none."""
    highest = 0
    for existing in ids:
        if not existing or not existing.startswith(prefix):
            continue
        suffix = existing[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def next_case_id(incident_id: str, existing_ids: Iterable[str]) -> str:
    """CASE-20250001-001 style id: one past the highest sequence under this incident."""
    prefix = case_id_prefix(incident_id)
    return f"{prefix}{max_sequence(existing_ids, prefix) + 1:03d}"


def next_incident_id(year: int, existing_ids: Iterable[str]) -> str:
    """INC20250001 style id: one past the highest sequence reported that year."""
    prefix = incident_id_prefix(year)
    return f"{prefix}{max_sequence(existing_ids, prefix) + 1:04d}"


def change_action(new_status: Optional[CaseStatus]) -> str:
    if new_status is None:
        return "updated"
    return f"status_changed_to_{new_status.value}"


def append_change(
    change_log: List[ChangeLogEntry],
    action: str,
    actor: str,
    timestamp: datetime,
    changes: Iterable[str] = (),
) -> List[ChangeLogEntry]:
    """Return a new log with one entry appended. The input list is left untouched."""
    entry = ChangeLogEntry(action=action, actor=actor, timestamp=timestamp, changes=list(changes))
    return [*change_log, entry]
