"""
Action log persistence - the audit trail of every rule trigger.

One row per trigger, written once by the orchestrator. After creation only
status / error_message change (patch), plus the revert stamps written by a
single conditional UPDATE (mark_reverted).
"""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import duckdb

from .models import ActionLogEntry, MetricsSnapshot, STATUS_REVERTED, as_local_naive

ACTION_LOG_COLUMNS = [
    "id",
    "user_id",
    "rule_id",
    "account_id",
    "ad_id",
    "ad_name",
    "campaign_name",
    "action_type",
    "reason",
    "metrics_snapshot",
    "saved_amount",
    "status",
    "error_message",
    "reverted_at",
    "reverted_by",
    "created_at",
]

# Fields patch() may touch
PATCHABLE_FIELDS = ("status", "error_message")


class ActionLog:
    """Manages action log persistence in DuckDB"""

    def __init__(self, db_path: str = "warehouse.duckdb"):
        self.db_path = Path(db_path)

    def _get_connection(self):
        """Get DuckDB connection"""
        return duckdb.connect(str(self.db_path))

    def create(self, entry: ActionLogEntry) -> str:
        """
        Persist a new entry.

        Returns: id of the stored entry (generated when entry.id is None)
        """
        entry_id = entry.id or uuid.uuid4().hex
        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                INSERT INTO action_logs ({", ".join(ACTION_LOG_COLUMNS)})
                VALUES ({", ".join(["?"] * len(ACTION_LOG_COLUMNS))})
                """,
                [
                    entry_id,
                    entry.user_id,
                    entry.rule_id,
                    entry.account_id,
                    entry.ad_id,
                    entry.ad_name,
                    entry.campaign_name,
                    entry.action_type,
                    entry.reason,
                    json.dumps(entry.metrics_snapshot.to_dict()),
                    entry.saved_amount,
                    entry.status,
                    entry.error_message,
                    as_local_naive(entry.reverted_at),
                    entry.reverted_by,
                    as_local_naive(entry.created_at),
                ],
            )
        finally:
            conn.close()

        entry.id = entry_id
        return entry_id

    def get(self, entry_id: str) -> Optional[ActionLogEntry]:
        entries = self._select("id = ?", [entry_id])
        return entries[0] if entries else None

    def patch(self, entry_id: str, fields: Dict[str, Any]) -> None:
        """Update status and/or error_message of an entry."""
        unknown = set(fields) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot patch action log fields: {', '.join(sorted(unknown))}")
        if not fields:
            return

        assignments = ", ".join(f"{name} = ?" for name in fields)
        conn = self._get_connection()
        try:
            conn.execute(
                f"UPDATE action_logs SET {assignments} WHERE id = ?",
                list(fields.values()) + [entry_id],
            )
        finally:
            conn.close()

    def mark_reverted(self, entry_id: str, reverted_by: str, now: datetime) -> bool:
        """
        Transition an entry to reverted in one statement.

        Returns: False if the entry was already reverted (or vanished) when
        the update ran.
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                UPDATE action_logs
                SET status = ?, reverted_at = ?, reverted_by = ?
                WHERE id = ?
                  AND status <> ?
                RETURNING id
                """,
                [STATUS_REVERTED, as_local_naive(now), reverted_by, entry_id, STATUS_REVERTED],
            ).fetchall()
        finally:
            conn.close()
        return len(rows) > 0

    def list_for_user(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[ActionLogEntry]:
        """Entries of a user, newest first, optionally bounded to [since, until)."""
        where = ["user_id = ?"]
        params: List[Any] = [user_id]
        if since is not None:
            where.append("created_at >= ?")
            params.append(as_local_naive(since))
        if until is not None:
            where.append("created_at < ?")
            params.append(as_local_naive(until))
        return self._select(" AND ".join(where), params)

    def get_logs(
        self,
        user_id: str,
        action_type: Optional[str] = None,
        account_id: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
    ) -> List[ActionLogEntry]:
        """
        Logs page query.

        Args:
            user_id: Owner of the entries
            action_type: stopped | notified | stopped_and_notified
            account_id: Restrict to one ad account
            rule_id: Restrict to one rule
            status: success | failed | reverted
            search: Case-insensitive substring over ad name, reason, campaign name
            limit: Max entries returned (newest first)
        """
        where = ["user_id = ?"]
        params: List[Any] = [user_id]

        if action_type:
            where.append("action_type = ?")
            params.append(action_type)
        if account_id:
            where.append("account_id = ?")
            params.append(account_id)
        if rule_id:
            where.append("rule_id = ?")
            params.append(rule_id)
        if status:
            where.append("status = ?")
            params.append(status)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            where.append(
                "(lower(ad_name) LIKE ? OR lower(reason) LIKE ? "
                "OR lower(coalesce(campaign_name, '')) LIKE ?)"
            )
            params.extend([pattern, pattern, pattern])

        return self._select(" AND ".join(where), params, limit=limit)

    def delete_for_account(self, account_id: str) -> int:
        """Cascade delete when an ad account is disconnected. Returns rows deleted."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "DELETE FROM action_logs WHERE account_id = ? RETURNING id",
                [account_id],
            ).fetchall()
        finally:
            conn.close()
        return len(rows)

    def _select(
        self,
        where: str,
        params: List[Any],
        limit: Optional[int] = None,
    ) -> List[ActionLogEntry]:
        query = f"""
            SELECT {", ".join(ACTION_LOG_COLUMNS)}
            FROM action_logs
            WHERE {where}
            ORDER BY created_at DESC, id
        """
        if limit is not None:
            query += f" LIMIT {int(limit)}"

        conn = self._get_connection()
        try:
            results = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [_row_to_entry(dict(zip(ACTION_LOG_COLUMNS, row))) for row in results]


def _row_to_entry(row: Dict[str, Any]) -> ActionLogEntry:
    snapshot = json.loads(row["metrics_snapshot"]) if row["metrics_snapshot"] else {}
    return ActionLogEntry(
        id=row["id"],
        user_id=row["user_id"],
        rule_id=row["rule_id"],
        account_id=row["account_id"],
        ad_id=row["ad_id"],
        ad_name=row["ad_name"],
        campaign_name=row["campaign_name"],
        action_type=row["action_type"],
        reason=row["reason"],
        metrics_snapshot=MetricsSnapshot.from_dict(snapshot),
        saved_amount=float(row["saved_amount"] or 0.0),
        status=row["status"],
        error_message=row["error_message"],
        reverted_at=row["reverted_at"],
        reverted_by=row["reverted_by"],
        created_at=row["created_at"],
    )
