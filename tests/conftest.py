"""Pytest configuration and shared fixtures."""
import os

# Keep the module-level engine off disk; must be set before casework is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from casework.config import Settings
from casework.database import Base
from casework.models.enums import OffenceCategory
from casework.models.payloads import IncidentReport, InvestigationSubmission, ReportedIndividual
from casework.services.locks import IncidentLocks
from casework.services.notifications import NotificationDispatcher
from casework.services.workflow import WorkflowService
# Import tables to register them with SQLAlchemy Base
from casework.store.tables import CaseRow, IncidentRow  # noqa: F401

COMPLAINANT = "reporter@school.edu"
INVESTIGATOR = "investigator@school.edu"
APPROVER = "approver@school.edu"
STUDENT = "alice@school.edu"


class RecordingNotifier(NotificationDispatcher):
    """Keeps every notification instead of sending it."""

    def __init__(self):
        self.sent = []

    def notify(self, recipients, kind, payload):
        self.sent.append((recipients, kind, payload))

    def kinds(self):
        return [kind for _, kind, _ in self.sent]


class FixedClock:
    """A clock tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """Fresh in-memory database shared across threads for one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a fresh in-memory database for each test."""
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def settings():
    settings = Settings()
    settings.appeal_window_days = 7
    settings.max_write_attempts = 3
    settings.appeal_reviewers = ["appeals@school.edu"]
    settings.smtp_host = ""
    return settings


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 3, 9, 0, 0))


@pytest.fixture
def workflow(db_session, notifier, settings, clock):
    return WorkflowService(
        db_session,
        notifier=notifier,
        locks=IncidentLocks(),
        settings=settings,
        clock=clock,
    )


def make_report(*emails, description="Damaged lab equipment during session", attachments=None):
    return IncidentReport(
        complainant_category="staff",
        occurred_at="2025-03-01T14:30",
        description=description,
        reported_individuals=[
            ReportedIndividual(email=email, squad="Squad 4", campus="North") for email in emails
        ],
        attachments=list(attachments or []),
    )


def student_code(level: int) -> InvestigationSubmission:
    return InvestigationSubmission(
        category=OffenceCategory.STUDENT_CODE,
        sub_category="Property and Resource Misuse",
        level=level,
        comments="Confirmed by CCTV",
    )


@pytest.fixture
def reported_case(workflow):
    """A single case in Pending Investigation."""
    incident, cases = workflow.report_incident(COMPLAINANT, make_report(STUDENT))
    return cases[0]
