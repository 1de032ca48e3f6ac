"""
Email delivery of rule notifications.
Supports HTML emails with plain text fallback.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from guard_engine.config_loader import EmailAlerts
from guard_engine.logging_config import setup_logging
from guard_engine.models import PRIORITY_CRITICAL, REVERT_WINDOW
from guard_engine.notifications import (
    NotificationChannel,
    NullNotifier,
    RuleNotificationEvent,
)

from .messages import event_header, format_grouped_notification, format_rule_notification

logger = setup_logging(__name__)


class EmailSender:
    """
    SMTP email sender with template support.

    Supports:
    - HTML emails with Jinja2 templates
    - Plain text fallback
    - STARTTLS SMTP (e.g. smtp.gmail.com:587)
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_email: Optional[str] = None,
    ):
        """
        Initialize email sender.

        Args:
            smtp_host: SMTP server hostname (e.g., smtp.gmail.com)
            smtp_port: SMTP port (587 for TLS)
            smtp_user: SMTP username/email
            smtp_password: SMTP password or app password
            from_email: From email address (defaults to smtp_user)
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user

        template_dir = Path(__file__).parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
        )

        logger.info(f"EmailSender initialized: {smtp_host}:{smtp_port}")

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        plain_body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email.

        Returns:
            {"sent": True} or {"sent": False, "reason": <error message>}
        """
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.from_email
            msg["To"] = to_email
            msg["Date"] = formatdate(localtime=True)

            if plain_body:
                msg.attach(MIMEText(plain_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            logger.info(f"Connecting to {self.smtp_host}:{self.smtp_port}")

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}: {subject}")
            return {"sent": True}

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return {"sent": False, "reason": str(e) or "SMTP authentication failed"}

        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            return {"sent": False, "reason": str(e) or "SMTP error"}

        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            return {"sent": False, "reason": str(e) or e.__class__.__name__}

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(**context)


class EmailNotifier(NotificationChannel):
    """
    Rule notifications by email.

    critical: sent right away, one email per trigger (with an undo link for stops).
    standard: appended to the user's pending queue, then the whole queue is
    flushed as one grouped email. Events stay queued if delivery fails and go
    out with the next flush. At most MAX_PENDING events are kept per user; the
    oldest are dropped (and logged) beyond that.
    """

    TEMPLATE = "rule_notification.html"
    MAX_PENDING = 20

    def __init__(
        self,
        sender: EmailSender,
        recipients: Dict[str, str],
        currency: str = "₽",
        dashboard_url: str = "http://localhost:5000",
    ):
        self.sender = sender
        self.recipients = dict(recipients)
        self.currency = currency
        self.dashboard_url = dashboard_url.rstrip("/")
        self.pending: Dict[str, List[RuleNotificationEvent]] = {}

    @classmethod
    def from_config(cls, alerts: EmailAlerts, currency: str = "₽") -> NotificationChannel:
        if not alerts.enabled:
            logger.info("Email alerts disabled in config")
            return NullNotifier()
        sender = EmailSender(
            smtp_host=alerts.smtp_host,
            smtp_port=alerts.smtp_port,
            smtp_user=alerts.smtp_user,
            smtp_password=alerts.smtp_password,
            from_email=alerts.from_email,
        )
        return cls(sender, alerts.recipients, currency=currency, dashboard_url=alerts.dashboard_url)

    def send_rule_notification(
        self,
        user_id: str,
        event: RuleNotificationEvent,
        priority: str,
    ) -> Dict[str, Any]:
        to_email = self.recipients.get(user_id)
        if not to_email:
            logger.warning(f"No notification recipient for user {user_id}")
            return {"sent": False, "reason": "no_recipient"}

        try:
            if priority == PRIORITY_CRITICAL:
                return self._send_single(to_email, event)

            self._enqueue(user_id, self.pending.get(user_id, []) + [event])
            return self.flush_pending(user_id)
        except Exception as e:
            logger.error(f"Notification for user {user_id} failed: {e}")
            return {"sent": False, "reason": str(e) or e.__class__.__name__}

    def flush_pending(self, user_id: str) -> Dict[str, Any]:
        """Send every queued standard event of a user as one email."""
        events = self.pending.pop(user_id, [])
        if not events:
            return {"sent": False, "reason": "nothing_pending"}

        to_email = self.recipients.get(user_id)
        if not to_email:
            self.pending[user_id] = events
            return {"sent": False, "reason": "no_recipient"}

        plain = format_grouped_notification(events, self.currency)
        if len(events) == 1:
            subject = f"{event_header(events[0])}: {events[0].ad_name}"
        else:
            subject = f"{len(events)} rules triggered"

        html = self.sender.render_template(
            self.TEMPLATE,
            {
                "title": subject,
                "lines": plain.splitlines(),
                "undo_url": None,
                "dashboard_url": self.dashboard_url,
            },
        )
        result = self.sender.send_email(to_email, subject, html, plain)
        if not result.get("sent"):
            self._enqueue(user_id, events + self.pending.get(user_id, []))
        return result

    def _enqueue(self, user_id: str, events: List[RuleNotificationEvent]) -> None:
        dropped = events[:-self.MAX_PENDING] if len(events) > self.MAX_PENDING else []
        for e in dropped:
            logger.warning(
                f"Dropping queued notification for user {user_id}: {e.rule_name} / {e.ad_name}"
            )
        self.pending[user_id] = events[len(dropped):]

    def undo_url(self, event: RuleNotificationEvent) -> Optional[str]:
        if not event.is_stop or not event.action_log_id:
            return None
        return f"{self.dashboard_url}/logs?undo={event.action_log_id}"

    def _send_single(self, to_email: str, event: RuleNotificationEvent) -> Dict[str, Any]:
        plain = format_rule_notification(event, self.currency)
        undo_url = self.undo_url(event)
        if undo_url:
            minutes = int(REVERT_WINDOW.total_seconds() // 60)
            plain += f"\nUndo within {minutes} minutes: {undo_url}"

        subject = f"{event_header(event)}: {event.ad_name}"
        html = self.sender.render_template(
            self.TEMPLATE,
            {
                "title": subject,
                "lines": format_rule_notification(event, self.currency).splitlines(),
                "undo_url": undo_url,
                "dashboard_url": self.dashboard_url,
            },
        )
        return self.sender.send_email(to_email, subject, html, plain)
