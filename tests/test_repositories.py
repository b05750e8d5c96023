"""
Tests for id generation, the change-log envelope and compare-on-write.
"""
import json
from datetime import datetime, timedelta

import pytest

from casework.models.enums import CaseStatus, IncidentStatus
from casework.repositories.cases import CaseRepository
from casework.repositories.incidents import IncidentRepository
from casework.services.errors import ConcurrentModification, NotFound
from casework.services.lifecycle import Decision
from casework.store.adapter import EntityType, SqlRecordStore
from casework.utils import incident_suffix, next_case_id, next_incident_id

from conftest import COMPLAINANT, STUDENT, make_report

T0 = datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def store(db_session):
    return SqlRecordStore(db_session)


@pytest.fixture
def cases(store):
    return CaseRepository(store)


@pytest.fixture
def incidents(store):
    return IncidentRepository(store)


class TestIdGeneration:
    """Test id formats and scan-and-increment allocation."""

    def test_standard_incident_suffix(self):
        assert incident_suffix("INC20250001") == "20250001"

    def test_nonstandard_incident_suffix_uses_last_eight(self):
        assert incident_suffix("legacy-incident-42") == "ident-42"

    def test_case_id_is_one_past_highest(self):
        """
        INVARIANT: A new case id is one past the highest sequence under its incident, gaps included.
        """
        existing = ["CASE-20250001-001", "CASE-20250001-007", "CASE-20250002-009", "garbage"]
        assert next_case_id("INC20250001", existing) == "CASE-20250001-008"

    def test_first_case_id(self):
        assert next_case_id("INC20250003", []) == "CASE-20250003-001"

    def test_incident_id_sequence_is_per_year(self):
        assert next_incident_id(2025, ["INC20250009", "INC20240042"]) == "INC20250010"
        assert next_incident_id(2026, ["INC20250009"]) == "INC20260001"

    def test_lost_race_rescans(self, cases, store, monkeypatch):
        """
        INVARIANT: Two records never share an id; a stale scan is retried, not overwritten.
        """
        cases.create("INC20250001", STUDENT, COMPLAINANT, T0)

        real_list_ids = store.list_ids
        calls = []

        def stale_then_real(entity, prefix=""):
            calls.append(prefix)
            # First scan misses the existing case, as a concurrent writer would
            return [] if len(calls) == 1 else real_list_ids(entity, prefix)

        monkeypatch.setattr(store, "list_ids", stale_then_real)
        second = cases.create("INC20250001", "bob@school.edu", COMPLAINANT, T0)

        assert second.case_id == "CASE-20250001-002"
        assert len(calls) == 2
        assert [c.case_id for c in cases.list_by_incident("INC20250001")] == [
            "CASE-20250001-001",
            "CASE-20250001-002",
        ]


class TestCompareOnWrite:
    """Test stale writes are rejected instead of silently overwriting."""

    def test_stale_version_is_rejected(self, cases):
        """
        INVARIANT: A write based on an outdated read raises ConcurrentModification and changes nothing.
        """
        created = cases.create("INC20250001", STUDENT, COMPLAINANT, T0)
        first = cases.fetch(created.case_id)
        second = cases.fetch(created.case_id)

        cases.apply(first, Decision(changes={"comments": "first"}), "a@school.edu", T0 + timedelta(minutes=1))

        with pytest.raises(ConcurrentModification):
            cases.apply(second, Decision(changes={"comments": "second"}), "b@school.edu", T0 + timedelta(minutes=2))

        stored = cases.get(created.case_id)
        assert stored.comments == "first"
        assert len(stored.change_log) == 2

    def test_update_without_status_change_logs_updated(self, cases):
        created = cases.create("INC20250001", STUDENT, COMPLAINANT, T0)
        current = cases.fetch(created.case_id)

        updated = cases.apply(
            current,
            Decision(changes={"squad": "Squad 9"}, new_status=CaseStatus.PENDING_INVESTIGATION),
            "a@school.edu",
            T0,
        )

        assert updated.change_log[-1].action == "updated"

    def test_missing_case(self, cases):
        with pytest.raises(NotFound):
            cases.fetch("CASE-20250001-404")


class TestIncidentRecords:
    """Test incident storage and closure."""

    def test_changelog_envelope_keeps_metadata(self, incidents, store):
        report = make_report(STUDENT)
        report.metadata = {"relayedFromCompany": True, "companyName": "Acme"}
        incident = incidents.create(COMPLAINANT, report, T0)

        raw = store.get(EntityType.INCIDENT, incident.incident_id).fields["metadata_changelog"]
        envelope = json.loads(raw)
        assert envelope["companyName"] == "Acme"
        assert envelope["changelog"][0]["action"] == "created"
        assert envelope["changelog"][0]["by"] == COMPLAINANT

    def test_close_is_idempotent(self, incidents):
        incident = incidents.create(COMPLAINANT, make_report(STUDENT), T0)

        assert incidents.close(incident.incident_id, T0) is True
        assert incidents.close(incident.incident_id, T0) is False

        closed = incidents.get(incident.incident_id)
        assert closed.status == IncidentStatus.CLOSED
        assert [e.action for e in closed.change_log] == ["created", "status_changed_to_Closed"]

    def test_list_newest_first(self, incidents):
        incidents.create(COMPLAINANT, make_report(STUDENT), T0)
        incidents.create(COMPLAINANT, make_report(STUDENT), T0 + timedelta(hours=1))

        assert [i.incident_id for i in incidents.list()] == ["INC20250002", "INC20250001"]
