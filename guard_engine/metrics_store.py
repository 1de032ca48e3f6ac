"""
Read access to accounts and stored metric buckets.

Backs the account/resource side of the rule sweep:
- active accounts (and their owners)
- today's per-ad daily bucket for an account
- realtime spend samples for an ad
- aggregated (24h / since launch) daily metrics for an ad
- the daily budget ceiling of the ad's campaign
"""

from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import duckdb

from .aggregator import aggregate_daily
from .models import MetricsSnapshot, as_local_naive
from .warehouse import ACCOUNT_STATUS_ACTIVE


class MetricsStore:
    """DuckDB-backed account and metrics reader."""

    def __init__(self, db_path: str = "warehouse.duckdb"):
        self.db_path = Path(db_path)

    def _get_connection(self):
        """Get DuckDB connection"""
        return duckdb.connect(str(self.db_path))

    def _fetch_dicts(self, query: str, params: List[Any]) -> List[Dict[str, Any]]:
        conn = self._get_connection()
        try:
            cur = conn.execute(query, params)
            cols = [c[0] for c in cur.description]
            rows = cur.fetchall()
        finally:
            conn.close()
        return [dict(zip(cols, r)) for r in rows]

    def list_active_accounts(self) -> List[Dict[str, Any]]:
        """Accounts eligible for evaluation, as [{id, user_id}]."""
        return self._fetch_dicts(
            """
            SELECT id, user_id
            FROM ad_accounts
            WHERE status = ?
            ORDER BY created_at, id
            """,
            [ACCOUNT_STATUS_ACTIVE],
        )

    def list_today_metrics(self, account_id: str, day: date) -> List[Dict[str, Any]]:
        """
        Daily bucket of every ad in the account for one date.

        Ads missing from the ads table get the display name "Ad <id>".
        """
        rows = self._fetch_dicts(
            """
            SELECT
                m.ad_id,
                m.spent,
                m.leads,
                m.impressions,
                m.clicks,
                m.cpl,
                m.ctr,
                a.name AS ad_name,
                a.campaign_id,
                c.name AS campaign_name
            FROM metrics_daily m
            LEFT JOIN ads a ON a.id = m.ad_id
            LEFT JOIN campaigns c ON c.id = a.campaign_id
            WHERE m.account_id = ?
              AND m.metric_date = ?
            ORDER BY m.ad_id
            """,
            [account_id, day],
        )
        for r in rows:
            if not r.get("ad_name"):
                r["ad_name"] = f"Ad {r['ad_id']}"
        return rows

    def list_realtime_since(self, ad_id: str, since: datetime) -> List[Dict[str, Any]]:
        """Realtime spend samples for an ad at/after `since` as [{spent, timestamp}]."""
        return self._fetch_dicts(
            """
            SELECT spent, sampled_at AS timestamp
            FROM metrics_realtime
            WHERE ad_id = ?
              AND sampled_at >= ?
            ORDER BY sampled_at
            """,
            [ad_id, as_local_naive(since)],
        )

    def count_realtime_since(self, ad_id: str, since: datetime) -> int:
        conn = self._get_connection()
        try:
            result = conn.execute(
                """
                SELECT COUNT(*)
                FROM metrics_realtime
                WHERE ad_id = ?
                  AND sampled_at >= ?
                """,
                [ad_id, as_local_naive(since)],
            ).fetchone()
        finally:
            conn.close()
        return int(result[0]) if result else 0

    def get_aggregated_metrics(
        self,
        ad_id: str,
        since_date: Optional[date] = None,
    ) -> MetricsSnapshot:
        """Sum of an ad's daily buckets, optionally from since_date onwards."""
        records = self._fetch_dicts(
            """
            SELECT metric_date AS date, spent, leads, impressions, clicks
            FROM metrics_daily
            WHERE ad_id = ?
            """,
            [ad_id],
        )
        return aggregate_daily(records, since_date=since_date)

    def get_campaign_daily_budget(self, ad_id: str) -> Optional[float]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT c.daily_limit
                FROM ads a
                JOIN campaigns c ON c.id = a.campaign_id
                WHERE a.id = ?
                LIMIT 1
                """,
                [ad_id],
            ).fetchone()
        finally:
            conn.close()

        if not row or row[0] is None:
            return None
        return float(row[0])
