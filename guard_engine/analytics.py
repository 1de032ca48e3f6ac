"""
Savings and activity analytics over action log entries.

All functions are pure: callers load the entries (ActionLog.list_for_user)
and pass the current time explicitly. Days are local calendar days.
"""
from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import (
    ACTION_NOTIFIED,
    ACTION_STOPPED,
    ACTION_STOPPED_AND_NOTIFIED,
    ActionLogEntry,
    NOTIFY_ACTION_TYPES,
    STOP_ACTION_TYPES,
    as_local_naive,
)

ACTION_TYPE_LABELS = {
    ACTION_STOPPED: "Stops",
    ACTION_NOTIFIED: "Notifications",
    ACTION_STOPPED_AND_NOTIFIED: "Stop + notify",
}
DELETED_RULE_NAME = "Deleted rule"


def start_of_day(now: datetime) -> datetime:
    now = as_local_naive(now)
    return datetime(now.year, now.month, now.day)


def _entries_since(entries: Iterable[ActionLogEntry], since: datetime) -> List[ActionLogEntry]:
    return [e for e in entries if e.created_at >= since]


def saved_today(entries: Iterable[ActionLogEntry], now: datetime) -> float:
    return sum(e.saved_amount for e in _entries_since(entries, start_of_day(now)))


def savings_by_day(
    entries: Iterable[ActionLogEntry],
    start: date,
    end: date,
) -> List[Dict[str, Any]]:
    """Saved amount per day for every day in [start, end], zero-filled."""
    by_date: Dict[date, float] = {}
    day = start
    while day <= end:
        by_date[day] = 0.0
        day += timedelta(days=1)

    for e in entries:
        d = e.created_at.date()
        if d in by_date:
            by_date[d] += e.saved_amount

    return [{"date": d.isoformat(), "amount": amount} for d, amount in by_date.items()]


def saved_history(
    entries: Iterable[ActionLogEntry],
    now: datetime,
    days: int = 7,
) -> List[Dict[str, Any]]:
    """Last `days` days ending today, oldest first."""
    days = max(int(days), 1)
    today = as_local_naive(now).date()
    return savings_by_day(entries, today - timedelta(days=days - 1), today)


def activity_stats(entries: Iterable[ActionLogEntry], now: datetime) -> Dict[str, int]:
    """Today's trigger / stop / notification counts."""
    todays = _entries_since(entries, start_of_day(now))
    return {
        "triggers": len(todays),
        "stops": sum(1 for e in todays if e.action_type in STOP_ACTION_TYPES),
        "notifications": sum(1 for e in todays if e.action_type in NOTIFY_ACTION_TYPES),
    }


def recent_events(
    entries: Iterable[ActionLogEntry],
    action_type: Optional[str] = None,
    account_id: Optional[str] = None,
    limit: int = 10,
) -> List[ActionLogEntry]:
    events = [
        e for e in entries
        if (action_type is None or e.action_type == action_type)
        and (account_id is None or e.account_id == account_id)
    ]
    events.sort(key=lambda e: e.created_at, reverse=True)
    return events[:limit]


def breakdown_by_type(entries: Iterable[ActionLogEntry]) -> List[Dict[str, Any]]:
    counts = Counter(e.action_type for e in entries)
    return [
        {"type": t, "label": label, "count": counts.get(t, 0)}
        for t, label in ACTION_TYPE_LABELS.items()
    ]


def triggers_by_rule(
    entries: Iterable[ActionLogEntry],
    rule_names: Dict[str, str],
) -> List[Dict[str, Any]]:
    counts = Counter(e.rule_id for e in entries)
    result = [
        {"rule_id": rule_id, "name": rule_names.get(rule_id, DELETED_RULE_NAME), "count": count}
        for rule_id, count in counts.items()
    ]
    result.sort(key=lambda r: r["count"], reverse=True)
    return result


def top_ads(entries: Iterable[ActionLogEntry], limit: int = 10) -> List[Dict[str, Any]]:
    """Ads ranked by total saved; spend is taken from the frozen snapshots."""
    by_ad: Dict[str, Dict[str, Any]] = {}
    for e in entries:
        ad = by_ad.setdefault(
            e.ad_id,
            {"ad_id": e.ad_id, "ad_name": e.ad_name, "total_saved": 0.0, "total_spent": 0.0, "triggers": 0},
        )
        ad["total_saved"] += e.saved_amount
        ad["total_spent"] += e.metrics_snapshot.spent
        ad["triggers"] += 1

    ranked = sorted(by_ad.values(), key=lambda a: a["total_saved"], reverse=True)
    return ranked[:limit]


def roi(entries: Sequence[ActionLogEntry]) -> Dict[str, Any]:
    total_saved = sum(e.saved_amount for e in entries)
    total_spent = sum(e.metrics_snapshot.spent for e in entries)
    pct = total_saved / total_spent * 100 if total_spent > 0 else 0.0
    return {
        "total_saved": total_saved,
        "total_spent": total_spent,
        "roi": round(pct, 2),
        "total_events": len(entries),
    }


def analytics_report(
    entries: Sequence[ActionLogEntry],
    start: date,
    end: date,
    rule_names: Dict[str, str],
    top_limit: int = 10,
) -> Dict[str, Any]:
    """Everything the analytics page shows for [start, end] (inclusive days)."""
    in_range = [e for e in entries if start <= e.created_at.date() <= end]
    return {
        "savings": savings_by_day(in_range, start, end),
        "by_type": breakdown_by_type(in_range),
        "by_rule": triggers_by_rule(in_range, rule_names),
        "top_ads": top_ads(in_range, top_limit),
        "roi": roi(in_range),
    }
