"""
Notification formatting and email delivery tests.

SMTP is mocked; templates are rendered for real.

Run: pytest tools/testing/test_notifier.py
"""

import smtplib
from unittest.mock import Mock, patch

from guard_alerts.email_sender import EmailNotifier, EmailSender
from guard_alerts.messages import format_grouped_notification, format_rule_notification
from guard_engine.config_loader import EmailAlerts
from guard_engine.models import MetricsSnapshot
from guard_engine.notifications import NullNotifier, RuleNotificationEvent


def make_event(**overrides):
    fields = dict(
        rule_name="High CPL",
        ad_name="Winter sale banner",
        reason="CPL 600₽ exceeded the 500₽ limit",
        action_type="stopped_and_notified",
        saved_amount=1500.0,
        metrics=MetricsSnapshot(spent=3000, leads=5, impressions=10000, clicks=200, cpl=600.0, ctr=2.0),
        campaign_name="Winter sale",
        action_log_id="log-1",
    )
    fields.update(overrides)
    return RuleNotificationEvent(**fields)


def make_sender(sent=True):
    sender = Mock()
    sender.render_template.return_value = "<html></html>"
    sender.send_email.return_value = {"sent": True} if sent else {"sent": False, "reason": "smtp down"}
    return sender


# ==================== Formatting ====================

def test_single_notification_lines():
    text = format_rule_notification(make_event())
    assert text.splitlines() == [
        "Stopped",
        "Rule: High CPL",
        "Ad: Winter sale banner",
        "Campaign: Winter sale",
        "Reason: CPL 600₽ exceeded the 500₽ limit",
        "Spent: 3 000₽",
        "CPL: 600₽",
        "CTR: 2.00%",
        "Saved ~1 500₽",
    ]


def test_notify_only_omits_undefined_and_zero_values():
    event = make_event(
        action_type="notified",
        saved_amount=0,
        campaign_name=None,
        metrics=MetricsSnapshot(spent=800, leads=0, impressions=0, clicks=0),
    )
    text = format_rule_notification(event)
    assert text.startswith("Needs attention")
    assert "Campaign:" not in text
    assert "CPL:" not in text
    assert "CTR:" not in text
    assert "Saved" not in text


def test_grouped_notification():
    events = [
        make_event(),
        make_event(rule_name="Low CTR", action_type="notified", saved_amount=0, reason="CTR 0.4% below 1%"),
    ]
    text = format_grouped_notification(events)
    lines = text.splitlines()
    assert lines[0] == "2 rules triggered"
    assert "- Needs attention: Winter sale banner (Low CTR): CTR 0.4% below 1%" in lines
    assert "Ads stopped: 1" in lines
    assert lines[-1] == "Total saved ~1 500₽"

    assert format_grouped_notification([]) == ""
    assert format_grouped_notification(events[:1]) == format_rule_notification(events[0])


# ==================== EmailNotifier ====================

def test_no_recipient():
    sender = make_sender()
    notifier = EmailNotifier(sender, {})
    result = notifier.send_rule_notification("user-1", make_event(), "critical")
    assert result == {"sent": False, "reason": "no_recipient"}
    sender.send_email.assert_not_called()


def test_critical_sent_immediately_with_undo_link():
    sender = make_sender()
    notifier = EmailNotifier(sender, {"user-1": "owner@example.com"}, dashboard_url="https://guard.example.com/")

    result = notifier.send_rule_notification("user-1", make_event(), "critical")

    assert result == {"sent": True}
    to_email, subject, html, plain = sender.send_email.call_args[0]
    assert to_email == "owner@example.com"
    assert subject == "Stopped: Winter sale banner"
    assert plain.endswith("Undo within 5 minutes: https://guard.example.com/logs?undo=log-1")
    context = sender.render_template.call_args[0][1]
    assert context["undo_url"] == "https://guard.example.com/logs?undo=log-1"


def test_notify_only_has_no_undo_link():
    notifier = EmailNotifier(make_sender(), {"user-1": "owner@example.com"})
    assert notifier.undo_url(make_event(action_type="notified")) is None
    assert notifier.undo_url(make_event(action_log_id=None)) is None


def test_standard_events_grouped_after_failed_send():
    sender = make_sender(sent=False)
    notifier = EmailNotifier(sender, {"user-1": "owner@example.com"})

    first = notifier.send_rule_notification("user-1", make_event(rule_name="A"), "standard")
    assert first == {"sent": False, "reason": "smtp down"}
    assert len(notifier.pending["user-1"]) == 1

    sender.send_email.return_value = {"sent": True}
    second = notifier.send_rule_notification("user-1", make_event(rule_name="B"), "standard")

    assert second == {"sent": True}
    assert "user-1" not in notifier.pending
    _, subject, _, plain = sender.send_email.call_args[0]
    assert subject == "2 rules triggered"
    assert "(A)" in plain and "(B)" in plain


def test_pending_queue_is_capped_while_delivery_fails():
    sender = make_sender(sent=False)
    notifier = EmailNotifier(sender, {"user-1": "owner@example.com"})

    for i in range(50):
        notifier.send_rule_notification("user-1", make_event(rule_name=f"R{i}"), "standard")

    queued = notifier.pending["user-1"]
    assert len(queued) == EmailNotifier.MAX_PENDING
    assert [e.rule_name for e in queued] == [f"R{i}" for i in range(30, 50)]
    _, subject, _, _ = sender.send_email.call_args[0]
    assert subject == f"{EmailNotifier.MAX_PENDING} rules triggered"


def test_flush_with_nothing_pending():
    notifier = EmailNotifier(make_sender(), {"user-1": "owner@example.com"})
    assert notifier.flush_pending("user-1") == {"sent": False, "reason": "nothing_pending"}


def test_render_error_is_reported_not_raised():
    sender = make_sender()
    sender.render_template.side_effect = RuntimeError("template missing")
    notifier = EmailNotifier(sender, {"user-1": "owner@example.com"})

    result = notifier.send_rule_notification("user-1", make_event(), "critical")

    assert result == {"sent": False, "reason": "template missing"}


def test_from_config_disabled_returns_null_notifier():
    channel = EmailNotifier.from_config(EmailAlerts(enabled=False))
    assert isinstance(channel, NullNotifier)
    assert channel.send_rule_notification("user-1", make_event(), "critical") == {
        "sent": False,
        "reason": "disabled",
    }


def test_from_config_enabled():
    alerts = EmailAlerts(enabled=True, smtp_user="bot@example.com", recipients={"user-1": "a@example.com"})
    channel = EmailNotifier.from_config(alerts, currency="$")
    assert isinstance(channel, EmailNotifier)
    assert channel.sender.from_email == "bot@example.com"
    assert channel.currency == "$"


# ==================== EmailSender ====================

def test_render_real_template():
    sender = EmailSender("smtp.example.com", 587, "bot@example.com", "secret")
    html = sender.render_template(
        EmailNotifier.TEMPLATE,
        {
            "title": "Stopped: <Banner>",
            "lines": ["Rule: High CPL"],
            "undo_url": "http://localhost:5000/logs?undo=log-1",
            "dashboard_url": "http://localhost:5000",
        },
    )
    assert "Stopped: &lt;Banner&gt;" in html
    assert "Rule: High CPL" in html
    assert "logs?undo=log-1" in html


@patch("guard_alerts.email_sender.smtplib.SMTP")
def test_send_email_success(mock_smtp):
    sender = EmailSender("smtp.example.com", 587, "bot@example.com", "secret")
    result = sender.send_email("owner@example.com", "Subject", "<p>hi</p>", "hi")

    assert result == {"sent": True}
    server = mock_smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot@example.com", "secret")
    server.send_message.assert_called_once()


@patch("guard_alerts.email_sender.smtplib.SMTP")
def test_send_email_smtp_error(mock_smtp):
    mock_smtp.side_effect = smtplib.SMTPException("connection refused")
    sender = EmailSender("smtp.example.com", 587, "bot@example.com", "secret")

    result = sender.send_email("owner@example.com", "Subject", "<p>hi</p>")

    assert result == {"sent": False, "reason": "connection refused"}
