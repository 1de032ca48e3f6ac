# guard_engine/warehouse.py
from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import duckdb

from .models import as_local_naive


# -----------------------------
# Column contracts
# -----------------------------
AD_ACCOUNT_COLS: List[str] = ["id", "user_id", "name", "status", "created_at"]
CAMPAIGN_COLS: List[str] = ["id", "account_id", "name", "status", "daily_limit"]
AD_COLS: List[str] = ["id", "account_id", "campaign_id", "name", "status"]

METRICS_DAILY_COLS: List[str] = [
    "account_id",
    "ad_id",
    "metric_date",
    "impressions",
    "clicks",
    "spent",
    "leads",
    "cpl",
    "ctr",
    "cpc",
]

METRICS_REALTIME_COLS: List[str] = [
    "account_id",
    "ad_id",
    "sampled_at",
    "spent",
    "leads",
    "impressions",
    "clicks",
]

# Idempotency keys
METRICS_DAILY_KEY_COLS: List[str] = ["account_id", "ad_id", "metric_date"]
METRICS_REALTIME_KEY_COLS: List[str] = ["ad_id", "sampled_at"]

ACCOUNT_STATUS_ACTIVE = "active"


# -----------------------------
# Helpers: type normalization
# -----------------------------
def _to_date(v: Any) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        return date.fromisoformat(v.strip()[:10])
    raise TypeError(f"metric_date must be date/datetime/str, got {type(v)}")


def _to_datetime(v: Any) -> datetime:
    if isinstance(v, datetime):
        return as_local_naive(v)
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day)
    if isinstance(v, str):
        return as_local_naive(datetime.fromisoformat(v.strip().replace("Z", "+00:00")))
    raise TypeError(f"sampled_at must be datetime/date/str, got {type(v)}")


def _rows_to_tuples(rows: Sequence[Dict[str, Any]], cols: Sequence[str]) -> List[Tuple[Any, ...]]:
    return [tuple(row.get(c) for c in cols) for row in rows]


def _unique_keys(rows: Sequence[Dict[str, Any]], key_cols: Sequence[str]) -> List[Tuple[Any, ...]]:
    seen = set()
    keys: List[Tuple[Any, ...]] = []
    for r in rows:
        k = tuple(r.get(c) for c in key_cols)
        if k not in seen:
            seen.add(k)
            keys.append(k)
    return keys


# -----------------------------
# Connect + init
# -----------------------------
def connect_warehouse(settings_or_path: Any) -> duckdb.DuckDBPyConnection:
    """
    Accepts either:
      - Settings-like object with attribute: warehouse_duckdb_path
      - string/pathlib path: "warehouse.duckdb" / Path("warehouse.duckdb")
    """
    if hasattr(settings_or_path, "warehouse_duckdb_path"):
        db_path = getattr(settings_or_path, "warehouse_duckdb_path")
    else:
        db_path = settings_or_path

    if isinstance(db_path, Path):
        db_path = str(db_path)

    if not isinstance(db_path, str):
        raise TypeError(
            f"connect_warehouse expected Settings(w/ warehouse_duckdb_path) or str path; got {type(settings_or_path)}"
        )

    return duckdb.connect(db_path)


def init_warehouse(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ad_accounts (
            id VARCHAR,
            user_id VARCHAR,
            name VARCHAR,
            status VARCHAR,
            created_at TIMESTAMP
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS campaigns (
            id VARCHAR,
            account_id VARCHAR,
            name VARCHAR,
            status VARCHAR,
            daily_limit DOUBLE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ads (
            id VARCHAR,
            account_id VARCHAR,
            campaign_id VARCHAR,
            name VARCHAR,
            status VARCHAR
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS metrics_daily (
            account_id VARCHAR,
            ad_id VARCHAR,
            metric_date DATE,
            impressions DOUBLE,
            clicks DOUBLE,
            spent DOUBLE,
            leads DOUBLE,
            cpl DOUBLE,
            ctr DOUBLE,
            cpc DOUBLE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS metrics_realtime (
            account_id VARCHAR,
            ad_id VARCHAR,
            sampled_at TIMESTAMP,
            spent DOUBLE,
            leads DOUBLE,
            impressions DOUBLE,
            clicks DOUBLE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS rules (
            id VARCHAR,
            user_id VARCHAR,
            name VARCHAR,
            type VARCHAR,
            metric VARCHAR,
            operator VARCHAR,
            value DOUBLE,
            min_samples INTEGER,
            time_window VARCHAR,
            stop_ad BOOLEAN,
            notify BOOLEAN,
            notify_channel VARCHAR,
            custom_message VARCHAR,
            target_account_ids VARCHAR,
            target_campaign_ids VARCHAR,
            target_ad_ids VARCHAR,
            is_active BOOLEAN,
            trigger_count INTEGER,
            last_triggered_at TIMESTAMP,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS action_logs (
            id VARCHAR,
            user_id VARCHAR,
            rule_id VARCHAR,
            account_id VARCHAR,
            ad_id VARCHAR,
            ad_name VARCHAR,
            campaign_name VARCHAR,
            action_type VARCHAR,
            reason VARCHAR,
            metrics_snapshot VARCHAR,
            saved_amount DOUBLE,
            status VARCHAR,
            error_message VARCHAR,
            reverted_at TIMESTAMP,
            reverted_by VARCHAR,
            created_at TIMESTAMP
        );
        """
    )


def ensure_warehouse(db_path: str) -> None:
    """Create the warehouse file and tables if they do not exist yet."""
    conn = connect_warehouse(db_path)
    try:
        init_warehouse(conn)
    finally:
        conn.close()


# -----------------------------
# Delete + insert (idempotent)
# -----------------------------
def _delete_by_keys(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    key_cols: Sequence[str],
    keys: Sequence[Tuple[Any, ...]],
) -> None:
    if not keys:
        return

    cols_sql = ", ".join(key_cols)
    placeholders = ", ".join(["(" + ", ".join(["?"] * len(key_cols)) + ")"] * len(keys))
    flat_params: List[Any] = []
    for k in keys:
        flat_params.extend(list(k))

    sql = f"DELETE FROM {table} WHERE ({cols_sql}) IN ({placeholders});"
    conn.execute(sql, flat_params)


def _insert_rows(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    cols: Sequence[str],
    rows: Sequence[Dict[str, Any]],
) -> None:
    if not rows:
        return
    cols_sql = ", ".join(cols)
    qmarks = ", ".join(["?"] * len(cols))
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES ({qmarks});"
    conn.executemany(sql, _rows_to_tuples(rows, cols))


def _upsert_by_id(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    cols: Sequence[str],
    rows: Sequence[Dict[str, Any]],
) -> None:
    keys = _unique_keys(rows, ["id"])
    _delete_by_keys(conn, table, ["id"], keys)
    _insert_rows(conn, table, cols, rows)


def upsert_ad_accounts(conn: duckdb.DuckDBPyConnection, rows: Sequence[Dict[str, Any]]) -> None:
    norm = []
    for r in rows:
        r2 = dict(r)
        r2.setdefault("status", ACCOUNT_STATUS_ACTIVE)
        r2.setdefault("created_at", datetime.now())
        norm.append(r2)
    _upsert_by_id(conn, "ad_accounts", AD_ACCOUNT_COLS, norm)


def upsert_campaigns(conn: duckdb.DuckDBPyConnection, rows: Sequence[Dict[str, Any]]) -> None:
    _upsert_by_id(conn, "campaigns", CAMPAIGN_COLS, rows)


def upsert_ads(conn: duckdb.DuckDBPyConnection, rows: Sequence[Dict[str, Any]]) -> None:
    _upsert_by_id(conn, "ads", AD_COLS, rows)


def insert_metrics_daily(conn: duckdb.DuckDBPyConnection, rows: Sequence[Dict[str, Any]]) -> None:
    norm = []
    for r in rows:
        r2 = dict(r)
        r2["metric_date"] = _to_date(r2["metric_date"])
        norm.append(r2)
    keys = _unique_keys(norm, METRICS_DAILY_KEY_COLS)
    _delete_by_keys(conn, "metrics_daily", METRICS_DAILY_KEY_COLS, keys)
    _insert_rows(conn, "metrics_daily", METRICS_DAILY_COLS, norm)


def insert_metrics_realtime(conn: duckdb.DuckDBPyConnection, rows: Sequence[Dict[str, Any]]) -> None:
    norm = []
    for r in rows:
        r2 = dict(r)
        r2["sampled_at"] = _to_datetime(r2["sampled_at"])
        norm.append(r2)
    keys = _unique_keys(norm, METRICS_REALTIME_KEY_COLS)
    _delete_by_keys(conn, "metrics_realtime", METRICS_REALTIME_KEY_COLS, keys)
    _insert_rows(conn, "metrics_realtime", METRICS_REALTIME_COLS, norm)
