"""Tests for the HTTP surface: status codes, refusal bodies and role headers."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from casework.api.deps import get_notifier
from casework.database import get_db
from casework.main import app

from conftest import APPROVER, COMPLAINANT, INVESTIGATOR, STUDENT


def as_user(email, role="student"):
    return {"X-User-Email": email, "X-User-Role": role}


@pytest.fixture
def client(engine, notifier):
    TestingSessionLocal = sessionmaker(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def case_id(client):
    response = client.post(
        "/api/incidents",
        json={
            "complainant_category": "staff",
            "date_time_of_incident": "2025-03-01T14:30",
            "description": "Damaged lab equipment during session",
            "reported_individuals": [{"email": STUDENT, "squad": "Squad 4", "campus": "North"}],
        },
        headers=as_user(COMPLAINANT),
    )
    assert response.status_code == 201
    return response.json()["cases"][0]["case_id"]


def submit(client, case_id, level=4):
    return client.post(
        f"/api/cases/{case_id}/investigation",
        json={"category": "student code", "sub_category": "Behavioral Misconduct", "level": level},
        headers=as_user(INVESTIGATOR, "investigator"),
    )


class TestIncidentEndpoints:

    def test_create_incident(self, client):
        response = client.post(
            "/api/incidents",
            json={
                "date_time_of_incident": "2025-03-01T14:30",
                "description": "Reported by the host company",
                "reported_individuals": [{"email": "a@school.edu"}, {"email": "b@school.edu"}],
                "relayed_from_company": True,
                "company_name": "Acme",
            },
            headers=as_user(COMPLAINANT),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["incident"]["status"] == "Open"
        assert body["incident"]["metadata"]["companyName"] == "Acme"
        assert [c["case_status"] for c in body["cases"]] == ["Pending Investigation"] * 2

    def test_short_description_rejected(self, client):
        response = client.post(
            "/api/incidents",
            json={
                "date_time_of_incident": "2025-03-01",
                "description": "short",
                "reported_individuals": [{"email": STUDENT}],
            },
            headers=as_user(COMPLAINANT),
        )
        assert response.status_code == 422

    def test_missing_identity(self, client):
        assert client.get("/api/incidents").status_code == 422

    def test_unknown_role(self, client):
        response = client.get("/api/incidents", headers=as_user(STUDENT, "janitor"))
        assert response.status_code == 403


class TestCaseEndpoints:

    def test_submit_and_verdict(self, client, case_id):
        response = submit(client, case_id)
        assert response.status_code == 200
        assert response.json()["category"] == "Breach of student code of conduct"

        response = client.post(
            f"/api/cases/{case_id}/verdict",
            json={"verdict": "Guilty", "punishment": "Suspension"},
            headers=as_user(APPROVER, "approver"),
        )
        assert response.status_code == 200
        assert response.json()["case_status"] == "Verdict Given"

        response = client.post(
            f"/api/cases/{case_id}/appeal",
            json={"reason": "The footage shows a different person"},
            headers=as_user(STUDENT),
        )
        assert response.status_code == 200
        assert response.json()["case_status"] == "Appealed"

        response = client.post(
            f"/api/cases/{case_id}/appeal/resolve",
            json={"review_comments": "Evidence withdrawn", "final_verdict": "Overturn to Not Guilty"},
            headers=as_user(APPROVER, "approver"),
        )
        body = response.json()
        assert body["case_status"] == "Final Decision"
        assert body["verdict"] == "Not Guilty"
        assert body["punishment"] == ""

    def test_invalid_transition_is_409(self, client, case_id):
        response = client.post(
            f"/api/cases/{case_id}/verdict",
            json={"verdict": "Guilty", "punishment": "Suspension"},
            headers=as_user(APPROVER, "approver"),
        )

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["current_status"] == "Pending Investigation"
        assert detail["message"].startswith("REFUSAL")

    def test_ineligible_appeal_reports_reason(self, client, case_id):
        submit(client, case_id, level=4)
        client.post(
            f"/api/cases/{case_id}/verdict",
            json={"verdict": "Not Guilty"},
            headers=as_user(APPROVER, "approver"),
        )

        response = client.post(
            f"/api/cases/{case_id}/appeal",
            json={"reason": "I would like to appeal anyway"},
            headers=as_user(STUDENT),
        )
        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "wrong_status"

    def test_role_refusal(self, client, case_id):
        response = client.post(
            f"/api/cases/{case_id}/investigation",
            json={"category": "student code", "sub_category": "Behavioral Misconduct", "level": 2},
            headers=as_user(STUDENT),
        )
        assert response.status_code == 403

    def test_sub_category_mismatch_is_400(self, client, case_id):
        response = client.post(
            f"/api/cases/{case_id}/investigation",
            json={"category": "student code", "sub_category": "Fraternization", "level": 2},
            headers=as_user(INVESTIGATOR, "investigator"),
        )
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "sub_category"

    def test_unknown_case_is_404(self, client):
        response = client.get("/api/cases/CASE-20259999-001", headers=as_user(APPROVER, "approver"))
        assert response.status_code == 404

    def test_my_cases(self, client, case_id):
        response = client.get("/api/cases/mine", headers=as_user(STUDENT))
        assert [c["case_id"] for c in response.json()] == [case_id]

    def test_closure_endpoint(self, client, case_id):
        submit(client, case_id, level=1)
        client.post(
            f"/api/cases/{case_id}/verdict",
            json={"verdict": "Guilty", "punishment": "Warning"},
            headers=as_user(APPROVER, "approver"),
        )
        incident_id = client.get(f"/api/cases/{case_id}", headers=as_user(STUDENT)).json()["incident_id"]

        response = client.post(f"/api/incidents/{incident_id}/check-closure", headers=as_user(APPROVER, "approver"))
        assert response.json() == {"incident_id": incident_id, "closed": True}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
