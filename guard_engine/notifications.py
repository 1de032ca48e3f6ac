"""
Notification channel interface used by the rule engine.

Delivery implementations live in guard_alerts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .models import MetricsSnapshot, STOP_ACTION_TYPES


@dataclass(frozen=True)
class RuleNotificationEvent:
    """What the user is told about one trigger."""
    rule_name: str
    ad_name: str
    reason: str
    action_type: str
    saved_amount: float
    metrics: MetricsSnapshot
    campaign_name: Optional[str] = None
    action_log_id: Optional[str] = None

    @property
    def is_stop(self) -> bool:
        return self.action_type in STOP_ACTION_TYPES


class NotificationChannel(ABC):
    """
    Delivery contract: returns {"sent": bool, ...} and never raises,
    transport errors are reported through the returned dict.
    """

    @abstractmethod
    def send_rule_notification(
        self,
        user_id: str,
        event: RuleNotificationEvent,
        priority: str,
    ) -> Dict[str, Any]:
        ...


class NullNotifier(NotificationChannel):
    """Channel used when alerts are disabled."""

    def send_rule_notification(self, user_id, event, priority):
        return {"sent": False, "reason": "disabled"}
