"""Case repository: reads and writes Case records through the record store."""
import logging
from datetime import datetime
from typing import List, Optional

from casework.models.domain import Case
from casework.models.enums import CaseStatus
from casework.repositories.base import Versioned, append_with_new_id
from casework.services.errors import NotFound
from casework.services.lifecycle import Decision
from casework.store.adapter import EntityType, SqlRecordStore
from casework.store.mapping import case_from_fields, case_to_fields
from casework.utils import append_change, case_id_prefix, change_action, next_case_id

logger = logging.getLogger(__name__)


class CaseRepository:
    """
    Owns case id generation and change-log appending.

    Invariants:
    - Case ids are CASE-<incident suffix>-<NNN>, one past the highest existing sequence
    - Every write appends exactly one change-log entry
    - Every write is compare-on-write against the version that was read
    """

    def __init__(self, store: SqlRecordStore):
        self.store = store

    def create(
        self,
        incident_id: str,
        reported_individual: str,
        created_by: str,
        now: datetime,
        squad: str = "",
        campus: str = "",
        attachments: Optional[List[str]] = None,
    ) -> Case:
        """
        Open a case in Pending Investigation.

        Not safe on its own under concurrent creation for the same incident;
        callers hold the incident's lock.
        """
        def build(case_id: str) -> dict:
            case = Case(
                case_id=case_id,
                incident_id=incident_id,
                reported_individual=reported_individual,
                squad=squad,
                campus=campus,
                attachments=list(attachments or []),
                case_status=CaseStatus.PENDING_INVESTIGATION,
                last_updated_by=created_by,
                last_updated_at=now,
                change_log=append_change([], "created", created_by, now),
            )
            return case_to_fields(case)

        case_id = append_with_new_id(
            self.store,
            EntityType.CASE,
            case_id_prefix(incident_id),
            lambda existing: next_case_id(incident_id, existing),
            build,
        )
        logger.info("Opened case %s for %s under incident %s", case_id, reported_individual, incident_id)
        return self.get(case_id)

    def discard(self, case_id: str) -> bool:
        """Remove a case written by an intake that did not complete."""
        return self.store.remove(EntityType.CASE, case_id)

    def fetch(self, case_id: str) -> Versioned[Case]:
        stored = self.store.get(EntityType.CASE, case_id)
        if stored is None:
            raise NotFound("Case", case_id)
        return Versioned(
            position=stored.position,
            version=stored.fields.get("last_updated_at", ""),
            record=case_from_fields(stored.fields),
        )

    def get(self, case_id: str) -> Case:
        return self.fetch(case_id).record

    def list_by_incident(self, incident_id: str) -> List[Case]:
        return [
            case_from_fields(stored.fields)
            for stored in self.store.list(EntityType.CASE, incident_id=incident_id)
        ]

    def list(
        self,
        status: Optional[CaseStatus] = None,
        campus: Optional[str] = None,
        reported_individual: Optional[str] = None,
    ) -> List[Case]:
        """All cases matching the filters, latest case id first."""
        filters = {}
        if status is not None:
            filters["case_status"] = status.value
        if campus:
            filters["campus"] = campus
        cases = [case_from_fields(stored.fields) for stored in self.store.list(EntityType.CASE, **filters)]
        if reported_individual:
            wanted = reported_individual.lower()
            cases = [c for c in cases if c.reported_individual.lower() == wanted]
        cases.sort(key=lambda c: c.case_id, reverse=True)
        return cases

    def apply(self, current: Versioned[Case], decision: Decision, actor: str, now: datetime) -> Case:
        """
        Write an accepted decision.

        Raises ConcurrentModification if the case changed after `current` was read.
        """
        before = current.record
        updated = decision.apply(before)
        status_changed = decision.new_status is not None and decision.new_status != before.case_status
        updated.last_updated_by = actor
        updated.last_updated_at = now
        updated.change_log = append_change(
            before.change_log,
            change_action(decision.new_status if status_changed else None),
            actor,
            now,
            decision.changed_fields,
        )
        self.store.update_at(
            EntityType.CASE,
            current.position,
            case_to_fields(updated),
            expected_version=current.version,
        )
        if status_changed:
            logger.info(
                "Case %s: %s -> %s by %s",
                before.case_id, before.case_status.value, updated.case_status.value, actor,
            )
        return updated
