"""
Rule notification delivery for Ads Guard

Sends:
- Critical alerts (ad stopped) immediately, with an undo link
- Grouped summaries of standard alerts
"""

__version__ = "1.0.0"

from .email_sender import EmailNotifier, EmailSender
from .messages import format_grouped_notification, format_rule_notification

__all__ = [
    "EmailNotifier",
    "EmailSender",
    "format_grouped_notification",
    "format_rule_notification",
]
