"""
Metrics Aggregator: turns stored metric buckets into evaluator inputs.

- Daily window: sum impressions/clicks/spent/leads over daily records,
  optionally only records dated on/after a cutoff. Ratios are NOT computed here.
- Realtime window: timestamped spend samples at/after a cutoff, oldest first.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .models import (
    MetricsSnapshot,
    SpendSnapshot,
    TIME_WINDOW_24H,
    TIME_WINDOW_SINCE_LAUNCH,
    _safe_float,
    as_local_naive,
)


def aggregate_daily(
    records: Iterable[Dict[str, Any]],
    since_date: Optional[date] = None,
) -> MetricsSnapshot:
    """Sum daily records for one ad into a single snapshot."""
    spent = leads = impressions = clicks = 0.0

    for r in records:
        if since_date is not None and _as_date(r.get("date")) < since_date:
            continue
        spent += _safe_float(r.get("spent"))
        leads += _safe_float(r.get("leads"))
        impressions += _safe_float(r.get("impressions"))
        clicks += _safe_float(r.get("clicks"))

    return MetricsSnapshot(
        spent=spent,
        leads=leads,
        impressions=impressions,
        clicks=clicks,
    )


def realtime_window(
    samples: Iterable[Dict[str, Any]],
    since: datetime,
) -> List[SpendSnapshot]:
    """Spend samples with timestamp >= since, sorted ascending by timestamp."""
    since = as_local_naive(since)
    window = [
        SpendSnapshot(spent=_safe_float(s.get("spent")), timestamp=as_local_naive(s["timestamp"]))
        for s in samples
        if s.get("timestamp") is not None and as_local_naive(s["timestamp"]) >= since
    ]
    window.sort(key=lambda s: s.timestamp)
    return window


def has_rate_data(window: List[SpendSnapshot]) -> bool:
    """A spend rate needs at least two samples."""
    return len(window) >= 2


def since_date_for_window(time_window: Optional[str], today: date) -> Optional[date]:
    """
    Cutoff date for aggregated windows.

    24h -> yesterday's bucket onwards; since_launch -> no cutoff (all dates).
    """
    if time_window == TIME_WINDOW_24H:
        return today - timedelta(days=1)
    if time_window == TIME_WINDOW_SINCE_LAUNCH:
        return None
    return today


def _as_date(v: Any) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        return date.fromisoformat(v.strip()[:10])
    raise TypeError(f"metric date must be date/datetime/str, got {type(v)}")
