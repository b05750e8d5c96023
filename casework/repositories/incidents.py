"""Incident repository: reads and writes Incident records, including closure."""
import dataclasses
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from casework.models.domain import Incident
from casework.models.enums import IncidentStatus
from casework.models.payloads import IncidentReport
from casework.repositories.base import Versioned, append_with_new_id
from casework.services.errors import NotFound
from casework.store.adapter import EntityType, SqlRecordStore
from casework.store.mapping import incident_from_fields, incident_to_fields
from casework.utils import append_change, incident_id_prefix, next_incident_id

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class IncidentRepository:
    """Owns incident ids, incident updates and the Open -> Closed status change."""

    def __init__(self, store: SqlRecordStore):
        self.store = store

    def create(self, complainant: str, report: IncidentReport, now: datetime) -> Incident:
        """Record a new incident. Always created Open."""
        def build(incident_id: str) -> dict:
            incident = Incident(
                incident_id=incident_id,
                complainant=complainant,
                complainant_category=report.complainant_category,
                occurred_at=report.occurred_at,
                reported_at=now,
                description=report.description,
                attachments=list(report.attachments),
                status=IncidentStatus.OPEN,
                last_updated_by=complainant,
                last_updated_at=now,
                metadata=dict(report.metadata),
                change_log=append_change([], "created", complainant, now),
            )
            return incident_to_fields(incident)

        incident_id = append_with_new_id(
            self.store,
            EntityType.INCIDENT,
            incident_id_prefix(now.year),
            lambda existing: next_incident_id(now.year, existing),
            build,
        )
        logger.info("Incident %s reported by %s", incident_id, complainant)
        return self.get(incident_id)

    def discard(self, incident_id: str) -> bool:
        """Remove an incident whose intake did not complete."""
        return self.store.remove(EntityType.INCIDENT, incident_id)

    def fetch(self, incident_id: str) -> Versioned[Incident]:
        stored = self.store.get(EntityType.INCIDENT, incident_id)
        if stored is None:
            raise NotFound("Incident", incident_id)
        return Versioned(
            position=stored.position,
            version=stored.fields.get("last_updated_at", ""),
            record=incident_from_fields(stored.fields),
        )

    def get(self, incident_id: str) -> Incident:
        return self.fetch(incident_id).record

    def list(
        self,
        complainant: Optional[str] = None,
        status: Optional[IncidentStatus] = None,
    ) -> List[Incident]:
        """Incidents matching the filters, most recently reported first."""
        filters = {"status": status.value} if status is not None else {}
        incidents = [
            incident_from_fields(stored.fields)
            for stored in self.store.list(EntityType.INCIDENT, **filters)
        ]
        if complainant:
            wanted = complainant.lower()
            incidents = [i for i in incidents if i.complainant.lower() == wanted]
        incidents.sort(key=lambda i: i.reported_at or datetime.min, reverse=True)
        return incidents

    def update(
        self,
        current: Versioned[Incident],
        changes: Dict[str, Any],
        actor: str,
        now: datetime,
    ) -> Incident:
        """Apply field changes with one change-log entry. Compare-on-write against current."""
        before = current.record
        updated = dataclasses.replace(before, **changes)
        if updated.status != before.status:
            action = f"status_changed_to_{updated.status.value}"
        else:
            action = "updated"
        updated.last_updated_by = actor
        updated.last_updated_at = now
        updated.change_log = append_change(before.change_log, action, actor, now, list(changes))
        self.store.update_at(
            EntityType.INCIDENT,
            current.position,
            incident_to_fields(updated),
            expected_version=current.version,
        )
        return updated

    def close(self, incident_id: str, now: datetime) -> bool:
        """
        Mark the incident Closed.

        Idempotent: closing an already closed incident writes nothing and returns False.
        """
        current = self.fetch(incident_id)
        if current.record.status == IncidentStatus.CLOSED:
            return False
        self.update(current, {"status": IncidentStatus.CLOSED}, SYSTEM_ACTOR, now)
        logger.info("Incident %s closed: all cases reached Final Decision", incident_id)
        return True
