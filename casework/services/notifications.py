"""
Notification dispatch for case status changes.

Fire-and-forget: a failed email is logged, never raised. A verdict must be
recorded even when the mail server is down.
"""
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Iterable, List, Union

from casework.config import Settings, get_settings
from casework.models.enums import NotificationKind

logger = logging.getLogger(__name__)

Recipients = Union[str, Iterable[str]]

_STATUS_MESSAGES = {
    "Verdict Given": (
        "A verdict has been recorded for your case. If you have been found Guilty, "
        "you may be eligible to appeal within {window} days."
    ),
    "Final Decision": (
        "A final decision has been reached for your case. "
        "This decision is final and cannot be appealed further."
    ),
    "Appealed": "Your appeal has been submitted and is currently under review.",
}


def _recipient_list(recipients: Recipients) -> List[str]:
    if isinstance(recipients, str):
        recipients = [recipients]
    return [r for r in recipients if r]


def _attachment_list(urls: Iterable[str]) -> str:
    urls = list(urls or [])
    if not urls:
        return ""
    items = "".join(
        f'<li><a href="{html.escape(url)}">Attachment {i}</a></li>'
        for i, url in enumerate(urls, start=1)
    )
    return f"<p><strong>Attachments:</strong></p><ul>{items}</ul>"


def _detail_rows(rows: Dict[str, Any]) -> str:
    return "".join(
        f"<p><strong>{label}:</strong> {html.escape(str(value))}</p>"
        for label, value in rows.items()
        if value not in (None, "")
    )


def _wrap(body: str, link: str, link_text: str) -> str:
    return (
        '<div style="font-family:sans-serif;max-width:600px;margin:0 auto;">'
        f"{body}"
        f'<p><a href="{html.escape(link)}" style="background-color:#000;color:#fff;'
        f'padding:10px 20px;text-decoration:none;border-radius:4px;">{link_text}</a></p>'
        "</div>"
    )


def _panel(content: str) -> str:
    return f'<div style="background-color:#f4f4f5;padding:15px;border-radius:8px;margin:20px 0;">{content}</div>'


class NotificationDispatcher:
    """Interface the workflow calls. Implementations must not raise."""

    def notify(self, recipients: Recipients, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class SmtpNotificationDispatcher(NotificationDispatcher):
    """Renders the email for a notification kind and sends it over SMTP."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_settings()

    def render(self, kind: NotificationKind, payload: Dict[str, Any]):
        """Return (subject, html body) for a notification."""
        app_url = self.settings.app_url
        incident_id = payload.get("incident_id", "")
        case_id = payload.get("case_id", "")

        if kind == NotificationKind.CASE_REPORTED:
            body = "<p>A new case has been reported where you are listed as the reported individual.</p>" + _panel(
                _detail_rows({
                    "Incident ID": incident_id,
                    "Case ID": case_id,
                    "Date & Time": payload.get("occurred_at"),
                    "Description": payload.get("description"),
                }) + _attachment_list(payload.get("attachments", []))
            )
            return "New Case Reported", _wrap(body, f"{app_url}/my-cases", "View Case")

        if kind == NotificationKind.STATUS_UPDATE:
            status = payload.get("status", "")
            message = _STATUS_MESSAGES.get(
                status, "The status of your case has changed to: {status}"
            ).format(window=self.settings.appeal_window_days, status=html.escape(status))
            body = f"<p>{message}</p>" + _panel(
                _detail_rows({
                    "Incident ID": incident_id,
                    "Case ID": case_id,
                    "Status": status,
                    "Verdict": payload.get("verdict"),
                    "Level of Offence": payload.get("level"),
                    "Description": payload.get("description"),
                    "Date & Time": payload.get("occurred_at"),
                    "Category": payload.get("category"),
                }) + _attachment_list(payload.get("attachments", []))
            )
            return status, _wrap(body, f"{app_url}/my-cases", "View Case Details")

        if kind == NotificationKind.APPEAL_CONFIRMATION:
            body = (
                f"<p>Your appeal for Case {html.escape(case_id)} has been submitted and is under review. "
                "We will notify you once a final decision is reached.</p>"
            ) + _panel(
                _detail_rows({"Appeal Description": payload.get("reason")})
                + _attachment_list(payload.get("attachments", []))
            )
            return "Appeal Submitted", _wrap(body, f"{app_url}/my-cases", "View Case")

        if kind == NotificationKind.APPEAL_NOTIFICATION:
            body = f"<p>An appeal has been submitted for Case {html.escape(case_id)}.</p>" + _panel(
                _detail_rows({
                    "Submitted By": payload.get("submitted_by"),
                    "Appeal Description": payload.get("reason"),
                }) + _attachment_list(payload.get("attachments", []))
            )
            return "New Appeal Submitted", _wrap(
                body, f"{app_url}/investigation-hub/{incident_id}", "Review Appeal"
            )

        if kind == NotificationKind.REINVESTIGATION:
            body = (
                f"<p>{html.escape(payload.get('requested_by', 'An approver'))} has requested further "
                f"investigation of Case {html.escape(case_id)}.</p>"
            ) + _panel(_detail_rows({"Incident ID": incident_id, "Case ID": case_id}))
            return "Further Investigation Requested", _wrap(
                body, f"{app_url}/investigation-hub/case/{case_id}", "Open Case"
            )

        raise ValueError(f"Unknown notification kind: {kind}")

    def _send(self, to: str, subject: str, body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"{self.settings.app_name} | {subject}"
        msg["From"] = self.settings.smtp_from
        msg["To"] = to
        msg.attach(MIMEText(body, "html"))

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as server:
            server.starttls()
            server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.sendmail(self.settings.smtp_from, [to], msg.as_string())

    def notify(self, recipients: Recipients, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        to = _recipient_list(recipients)
        if not to:
            return
        if not self.settings.smtp_configured:
            logger.warning("SMTP not configured. %s email not sent to %s", kind.value, ", ".join(to))
            return
        try:
            subject, body = self.render(kind, payload)
        except Exception:
            logger.exception("Failed to render %s email", kind.value)
            return
        for address in to:
            try:
                self._send(address, subject, body)
                logger.info("Email sent to %s: %s", address, subject)
            except Exception:
                logger.exception("Failed to send %s email to %s", kind.value, address)
