"""
Plain-text rendering of rule notifications.

Single event:
    Stopped | Needs attention
    Rule, Ad, Campaign (if known), Reason, Spent, CPL/CTR (if defined),
    Saved ~N (only when > 0)

Several events: one summary with a line per event, the number of stopped
ads and the total saved.
"""

from typing import List, Sequence

from guard_engine.notifications import RuleNotificationEvent

HEADER_STOPPED = "Stopped"
HEADER_ATTENTION = "Needs attention"


def _money(value: float, currency: str) -> str:
    return f"{value:,.0f}{currency}".replace(",", " ")


def event_header(event: RuleNotificationEvent) -> str:
    return HEADER_STOPPED if event.is_stop else HEADER_ATTENTION


def format_rule_notification(event: RuleNotificationEvent, currency: str = "₽") -> str:
    m = event.metrics
    lines = [
        event_header(event),
        f"Rule: {event.rule_name}",
        f"Ad: {event.ad_name}",
    ]
    if event.campaign_name:
        lines.append(f"Campaign: {event.campaign_name}")
    lines.append(f"Reason: {event.reason}")
    lines.append(f"Spent: {_money(m.spent, currency)}")
    if m.cpl is not None:
        lines.append(f"CPL: {_money(m.cpl, currency)}")
    if m.ctr is not None:
        lines.append(f"CTR: {m.ctr:.2f}%")
    if event.saved_amount > 0:
        lines.append(f"Saved ~{_money(event.saved_amount, currency)}")
    return "\n".join(lines)


def format_grouped_notification(
    events: Sequence[RuleNotificationEvent],
    currency: str = "₽",
) -> str:
    if not events:
        return ""
    if len(events) == 1:
        return format_rule_notification(events[0], currency)

    lines: List[str] = [f"{len(events)} rules triggered"]
    for e in events:
        lines.append(f"- {event_header(e)}: {e.ad_name} ({e.rule_name}): {e.reason}")

    stopped = sum(1 for e in events if e.is_stop)
    total_saved = sum(e.saved_amount for e in events)
    lines.append(f"Ads stopped: {stopped}")
    lines.append(f"Total saved ~{_money(total_saved, currency)}")
    return "\n".join(lines)
