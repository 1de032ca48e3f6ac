"""
Ads Guard data models: Rule, MetricsSnapshot, SpendSnapshot, ActionLogEntry.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class RuleType(str, Enum):
    """Closed catalogue of rule conditions."""
    CPL_LIMIT = "cpl_limit"
    MIN_CTR = "min_ctr"
    FAST_SPEND = "fast_spend"
    SPEND_NO_LEADS = "spend_no_leads"
    BUDGET_LIMIT = "budget_limit"
    LOW_IMPRESSIONS = "low_impressions"
    CLICKS_NO_LEADS = "clicks_no_leads"

    @classmethod
    def parse(cls, value: Any) -> Optional["RuleType"]:
        """Return the matching member, or None for unknown/future types."""
        try:
            return cls(value)
        except ValueError:
            return None


# Time windows for clicks_no_leads
TIME_WINDOW_DAILY = "daily"
TIME_WINDOW_24H = "24h"
TIME_WINDOW_SINCE_LAUNCH = "since_launch"
TIME_WINDOWS = (TIME_WINDOW_DAILY, TIME_WINDOW_24H, TIME_WINDOW_SINCE_LAUNCH)

# ActionLogEntry.action_type
ACTION_STOPPED = "stopped"
ACTION_NOTIFIED = "notified"
ACTION_STOPPED_AND_NOTIFIED = "stopped_and_notified"
ACTION_TYPES = (ACTION_STOPPED, ACTION_NOTIFIED, ACTION_STOPPED_AND_NOTIFIED)
STOP_ACTION_TYPES = (ACTION_STOPPED, ACTION_STOPPED_AND_NOTIFIED)
NOTIFY_ACTION_TYPES = (ACTION_NOTIFIED, ACTION_STOPPED_AND_NOTIFIED)

# ActionLogEntry.status
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_REVERTED = "reverted"
STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_REVERTED)

# Notification priority
PRIORITY_CRITICAL = "critical"
PRIORITY_STANDARD = "standard"

# A stop can be undone for this long after the trigger
REVERT_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class RuleCondition:
    metric: str
    operator: str
    value: float
    min_samples: Optional[int] = None
    time_window: Optional[str] = None   # daily | 24h | since_launch (clicks_no_leads only)


@dataclass(frozen=True)
class RuleActions:
    stop_ad: bool
    notify: bool
    notify_channel: Optional[str] = None
    custom_message: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    """A user-owned automation policy."""
    id: str
    user_id: str
    name: str
    type: str                           # RuleType value; unknown values never trigger
    conditions: RuleCondition
    actions: RuleActions
    target_account_ids: List[str]
    target_campaign_ids: List[str] = field(default_factory=list)
    target_ad_ids: List[str] = field(default_factory=list)
    is_active: bool = True
    trigger_count: int = 0
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Point-in-time metrics for one ad.

    cpl/ctr are None (not 0) when their denominator is zero.
    """
    spent: float
    leads: float
    impressions: float
    clicks: float
    cpl: Optional[float] = None
    ctr: Optional[float] = None

    def with_ratios(self) -> "MetricsSnapshot":
        """Fill in cpl/ctr where they are missing and defined."""
        cpl = self.cpl
        if cpl is None and self.leads > 0:
            cpl = self.spent / self.leads
        ctr = self.ctr
        if ctr is None and self.impressions > 0:
            ctr = self.clicks / self.impressions * 100
        return replace(self, cpl=cpl, ctr=ctr)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spent": self.spent,
            "leads": self.leads,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "cpl": self.cpl,
            "ctr": self.ctr,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricsSnapshot":
        return cls(
            spent=_safe_float(data.get("spent")),
            leads=_safe_float(data.get("leads")),
            impressions=_safe_float(data.get("impressions")),
            clicks=_safe_float(data.get("clicks")),
            cpl=_optional_float(data.get("cpl")),
            ctr=_optional_float(data.get("ctr")),
        )


@dataclass(frozen=True)
class SpendSnapshot:
    """Cumulative spend of an ad at a moment in time."""
    spent: float
    timestamp: datetime


@dataclass
class ActionLogEntry:
    """Audit record of one trigger. Only status (and revert stamps) change after creation."""
    user_id: str
    rule_id: str
    account_id: str
    ad_id: str
    ad_name: str
    action_type: str                    # stopped | notified | stopped_and_notified
    reason: str
    metrics_snapshot: MetricsSnapshot
    saved_amount: float
    status: str                         # success | failed | reverted
    created_at: datetime
    campaign_name: Optional[str] = None
    error_message: Optional[str] = None
    reverted_at: Optional[datetime] = None
    reverted_by: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "rule_id": self.rule_id,
            "account_id": self.account_id,
            "ad_id": self.ad_id,
            "ad_name": self.ad_name,
            "campaign_name": self.campaign_name,
            "action_type": self.action_type,
            "reason": self.reason,
            "metrics_snapshot": self.metrics_snapshot.to_dict(),
            "saved_amount": self.saved_amount,
            "status": self.status,
            "error_message": self.error_message,
            "reverted_at": self.reverted_at.isoformat() if self.reverted_at else None,
            "reverted_by": self.reverted_by,
            "created_at": self.created_at.isoformat(),
        }


def determine_action_type(actions: RuleActions) -> str:
    """Map a rule's action flags to the audit action type."""
    if actions.stop_ad and actions.notify:
        return ACTION_STOPPED_AND_NOTIFIED
    if actions.stop_ad:
        return ACTION_STOPPED
    return ACTION_NOTIFIED


def _safe_float(x: Any, default: float = 0.0) -> float:
    if x is None:
        return default
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def _optional_float(x: Any) -> Optional[float]:
    if x is None:
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def as_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """
    Timestamps are stored and compared as naive local time (DuckDB TIMESTAMP).
    Aware datetimes are converted to local time and their tzinfo dropped.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
