"""
Reason Formatter: one-line, user-facing explanation of why a rule fired.

The string is frozen into the action log and reused in notifications, so it
carries only user-facing values and units.
"""
from typing import Optional

from .conditions import click_through_rate, cost_per_lead
from .models import (
    MetricsSnapshot,
    RuleCondition,
    RuleType,
    TIME_WINDOW_24H,
    TIME_WINDOW_SINCE_LAUNCH,
)

WINDOW_LABELS = {
    TIME_WINDOW_SINCE_LAUNCH: "since launch",
    TIME_WINDOW_24H: "in the last 24h",
}
DEFAULT_WINDOW_LABEL = "today"


def build_reason(
    rule_type: str,
    condition: RuleCondition,
    metrics: MetricsSnapshot,
    time_window: Optional[str] = None,
    currency: str = "₽",
    percent_spent: Optional[float] = None,
) -> str:
    kind = RuleType.parse(rule_type)
    threshold = _fmt(condition.value)

    if kind is RuleType.CPL_LIMIT:
        cpl = cost_per_lead(metrics) or 0.0
        return f"CPL {cpl:.0f}{currency} exceeded the {threshold}{currency} limit"

    if kind is RuleType.MIN_CTR:
        ctr = click_through_rate(metrics) or 0.0
        return f"CTR {ctr:.2f}% is below the {threshold}% minimum"

    if kind is RuleType.FAST_SPEND:
        if percent_spent is not None:
            return (
                f"Budget spent too fast: {percent_spent:.0f}% of the daily budget "
                f"(threshold {threshold}%)"
            )
        return f"Budget spent too fast (threshold {threshold}%)"

    if kind is RuleType.SPEND_NO_LEADS:
        return (
            f"Spent {_fmt(metrics.spent)}{currency} with no leads "
            f"(limit {threshold}{currency})"
        )

    if kind is RuleType.BUDGET_LIMIT:
        return f"Spend {_fmt(metrics.spent)}{currency} exceeded the {threshold}{currency} budget"

    if kind is RuleType.LOW_IMPRESSIONS:
        return f"{_fmt(metrics.impressions)} impressions, below the {threshold} minimum"

    if kind is RuleType.CLICKS_NO_LEADS:
        label = WINDOW_LABELS.get(time_window, DEFAULT_WINDOW_LABEL)
        return f"{_fmt(metrics.clicks)} clicks with no leads {label} (threshold {threshold})"

    return f"Rule {rule_type} triggered"


def _fmt(value: float) -> str:
    """Whole numbers without decimals, otherwise up to two decimals."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
