"""
Notification delivery.

A sink delivers one rendered notification to one recipient. Failures raise
NotificationDispatchError so the caller can isolate them per recipient.
"""
import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings
from app.core.errors import NotificationDispatchError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

PROJECT_COMPLETED = "project_completed"

_SUBJECTS = {
    PROJECT_COMPLETED: "[PROJECT COMPLETED] {title} ({project_code})",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render(template_kind: str, payload: Dict[str, Any]) -> tuple:
    """Return (subject, html_body) for a notification kind."""
    if template_kind not in _SUBJECTS:
        raise ValueError(f"Unknown notification template: {template_kind}")
    subject = _SUBJECTS[template_kind].format(**payload)
    body = _env.get_template(f"{template_kind}.html").render(app_url=settings.APP_URL, **payload)
    return subject, body


class NotificationSink:
    """Delivers a single notification to a single address."""

    def send(self, to_email: str, template_kind: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log. Used when no SMTP host is configured."""

    def send(self, to_email: str, template_kind: str, payload: Dict[str, Any]) -> None:
        subject, _ = render(template_kind, payload)
        logger.info("Notification for %s: %s", to_email, subject)


class SmtpNotificationSink(NotificationSink):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        from_email: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_email = from_email

    def _message(self, to_email: str, subject: str, body_html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.set_content("This notification requires an HTML-capable mail client.")
        msg.add_alternative(body_html, subtype="html")
        return msg

    def send(self, to_email: str, template_kind: str, payload: Dict[str, Any]) -> None:
        if not to_email:
            raise NotificationDispatchError("<empty>", "no email address")
        subject, body = render(template_kind, payload)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                refused = server.send_message(self._message(to_email, subject, body))
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationDispatchError(to_email, str(exc)) from exc
        if refused:
            raise NotificationDispatchError(to_email, f"refused: {refused}")
        logger.debug("SMTP accepted %s notification for %s", template_kind, to_email)


def get_notification_sink() -> NotificationSink:
    if not settings.SMTP_HOST:
        return LoggingNotificationSink()
    return SmtpNotificationSink(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
        from_email=settings.NOTIFY_FROM_EMAIL,
    )
