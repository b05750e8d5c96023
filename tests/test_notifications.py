"""Tests for email rendering and the fire-and-forget dispatch contract."""
import smtplib

import pytest

from casework.models.enums import NotificationKind
from casework.services.notifications import SmtpNotificationDispatcher


@pytest.fixture
def smtp_settings(settings):
    settings.smtp_host = "smtp.school.edu"
    settings.smtp_user = "mailer"
    settings.smtp_password = "secret"
    return settings


class TestRendering:

    @pytest.mark.parametrize("kind,subject", [
        (NotificationKind.CASE_REPORTED, "New Case Reported"),
        (NotificationKind.APPEAL_CONFIRMATION, "Appeal Submitted"),
        (NotificationKind.APPEAL_NOTIFICATION, "New Appeal Submitted"),
        (NotificationKind.REINVESTIGATION, "Further Investigation Requested"),
    ])
    def test_subjects(self, settings, kind, subject):
        rendered_subject, body = SmtpNotificationDispatcher(settings).render(
            kind, {"incident_id": "INC20250001", "case_id": "CASE-20250001-001"}
        )
        assert rendered_subject == subject
        assert "CASE-20250001-001" in body

    def test_status_update_mentions_window(self, settings):
        subject, body = SmtpNotificationDispatcher(settings).render(
            NotificationKind.STATUS_UPDATE, {"case_id": "CASE-20250001-001", "status": "Verdict Given"}
        )
        assert subject == "Verdict Given"
        assert "within 7 days" in body

    def test_user_text_is_escaped(self, settings):
        _, body = SmtpNotificationDispatcher(settings).render(
            NotificationKind.APPEAL_CONFIRMATION, {"case_id": "C1", "reason": "<script>alert(1)</script>"}
        )
        assert "<script>" not in body


class TestDispatch:

    def test_skipped_without_smtp(self, settings, monkeypatch):
        def refuse(*args, **kwargs):
            raise AssertionError("SMTP must not be contacted")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        SmtpNotificationDispatcher(settings).notify("a@school.edu", NotificationKind.CASE_REPORTED, {})

    def test_send_failure_is_swallowed(self, smtp_settings, monkeypatch):
        """
        INVARIANT: A failed email never raises into the caller.
        """
        def unreachable(*args, **kwargs):
            raise ConnectionRefusedError("no route")

        monkeypatch.setattr(smtplib, "SMTP", unreachable)
        SmtpNotificationDispatcher(smtp_settings).notify(
            ["a@school.edu", "b@school.edu"], NotificationKind.CASE_REPORTED, {"case_id": "C1"}
        )

    def test_sends_one_message_per_recipient(self, smtp_settings, monkeypatch):
        sent = []

        class FakeSMTP:
            def __init__(self, host, port):
                assert host == "smtp.school.edu"

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def starttls(self):
                pass

            def login(self, user, password):
                assert (user, password) == ("mailer", "secret")

            def sendmail(self, sender, to, message):
                sent.append(to)

        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        SmtpNotificationDispatcher(smtp_settings).notify(
            ["a@school.edu", "", "b@school.edu"], NotificationKind.CASE_REPORTED, {"case_id": "C1"}
        )

        assert sent == [["a@school.edu"], ["b@school.edu"]]
