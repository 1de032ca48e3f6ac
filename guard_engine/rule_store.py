"""
Rule persistence - user automation rules and their trigger statistics.

trigger_count / last_triggered_at are only ever changed through a single
UPDATE statement so overlapping sweeps cannot lose increments.
"""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from .logging_config import setup_logging
from .models import Rule, RuleActions, RuleCondition, as_local_naive
from .rule_models import (
    RuleValidationError,
    can_auto_stop,
    parse_rule_draft,
    rule_limit_for_tier,
)

logger = setup_logging(__name__)

RULE_COLUMNS = [
    "id",
    "user_id",
    "name",
    "type",
    "metric",
    "operator",
    "value",
    "min_samples",
    "time_window",
    "stop_ad",
    "notify",
    "notify_channel",
    "custom_message",
    "target_account_ids",
    "target_campaign_ids",
    "target_ad_ids",
    "is_active",
    "trigger_count",
    "last_triggered_at",
    "created_at",
    "updated_at",
]


class RuleStore:
    """Manages automation rules in DuckDB"""

    def __init__(
        self,
        db_path: str = "warehouse.duckdb",
        tier_rule_limits: Optional[Dict[str, Optional[int]]] = None,
    ):
        self.db_path = Path(db_path)
        self.tier_rule_limits = tier_rule_limits

    def _get_connection(self):
        """Get DuckDB connection"""
        return duckdb.connect(str(self.db_path))

    def _select(self, where: str, params: List[Any]) -> List[Rule]:
        conn = self._get_connection()
        try:
            results = conn.execute(
                f"""
                SELECT {", ".join(RULE_COLUMNS)}
                FROM rules
                WHERE {where}
                ORDER BY created_at, id
                """,
                params,
            ).fetchall()
        finally:
            conn.close()

        return [_row_to_rule(dict(zip(RULE_COLUMNS, row))) for row in results]

    def list_active_rules(self, user_id: str) -> List[Rule]:
        return self._select("user_id = ? AND is_active", [user_id])

    def list_rules(self, user_id: str) -> List[Rule]:
        return self._select("user_id = ?", [user_id])

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        rules = self._select("id = ?", [rule_id])
        return rules[0] if rules else None

    def rule_names(self, rule_ids: Sequence[str]) -> Dict[str, str]:
        """Map rule id -> name for the ids that still exist."""
        ids = list(dict.fromkeys(rule_ids))
        if not ids:
            return {}

        placeholders = ", ".join(["?"] * len(ids))
        conn = self._get_connection()
        try:
            results = conn.execute(
                f"SELECT id, name FROM rules WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
        finally:
            conn.close()

        return {row[0]: row[1] for row in results}

    def count_active_rules(self, user_id: str) -> int:
        conn = self._get_connection()
        try:
            result = conn.execute(
                "SELECT COUNT(*) FROM rules WHERE user_id = ? AND is_active",
                [user_id],
            ).fetchone()
        finally:
            conn.close()
        return int(result[0]) if result else 0

    def increment_trigger_count(self, rule_id: str, now: Optional[datetime] = None) -> None:
        """Atomic +1 on trigger_count and stamp last_triggered_at."""
        now = as_local_naive(now) or datetime.now()
        conn = self._get_connection()
        try:
            conn.execute(
                """
                UPDATE rules
                SET trigger_count = trigger_count + 1,
                    last_triggered_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                [now, now, rule_id],
            )
        finally:
            conn.close()

    def create_rule(
        self,
        user_id: str,
        draft: Any,
        tier: str = "freemium",
        now: Optional[datetime] = None,
    ) -> Rule:
        """
        Validate a draft against the user's plan and store it as an active rule.

        Raises:
            RuleValidationError: invalid draft, plan allowance reached, or
                duplicate name (case-insensitive) for this user.
        """
        draft = parse_rule_draft(draft)
        now = as_local_naive(now) or datetime.now()

        limit = rule_limit_for_tier(tier, self.tier_rule_limits)
        if limit is not None and self.count_active_rules(user_id) >= limit:
            raise RuleValidationError(
                [f"Plan '{tier}' allows at most {limit} active rules"]
            )

        existing = {r.name.lower() for r in self.list_rules(user_id)}
        if draft.name.lower() in existing:
            raise RuleValidationError([f"A rule named '{draft.name}' already exists"])

        stop_ad = draft.actions.stop_ad
        if stop_ad and not can_auto_stop(tier, self.tier_rule_limits):
            logger.info(f"Plan '{tier}' cannot auto-stop ads; rule '{draft.name}' will only notify")
            stop_ad = False

        condition = draft.to_condition()
        rule = Rule(
            id=uuid.uuid4().hex,
            user_id=user_id,
            name=draft.name,
            type=draft.type.value,
            conditions=condition,
            actions=RuleActions(
                stop_ad=stop_ad,
                notify=draft.actions.notify,
                notify_channel=draft.actions.notify_channel,
                custom_message=draft.actions.custom_message,
            ),
            target_account_ids=list(draft.target_account_ids),
            target_campaign_ids=list(draft.target_campaign_ids),
            target_ad_ids=list(draft.target_ad_ids),
            is_active=True,
            trigger_count=0,
            last_triggered_at=None,
            created_at=now,
        )

        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                INSERT INTO rules ({", ".join(RULE_COLUMNS)})
                VALUES ({", ".join(["?"] * len(RULE_COLUMNS))})
                """,
                [
                    rule.id,
                    rule.user_id,
                    rule.name,
                    rule.type,
                    condition.metric,
                    condition.operator,
                    condition.value,
                    condition.min_samples,
                    condition.time_window,
                    rule.actions.stop_ad,
                    rule.actions.notify,
                    rule.actions.notify_channel,
                    rule.actions.custom_message,
                    json.dumps(rule.target_account_ids),
                    json.dumps(rule.target_campaign_ids),
                    json.dumps(rule.target_ad_ids),
                    True,
                    0,
                    None,
                    now,
                    now,
                ],
            )
        finally:
            conn.close()

        logger.info(f"Created rule {rule.id} '{rule.name}' ({rule.type}) for user {user_id}")
        return rule

    def set_active(
        self,
        rule_id: str,
        active: bool,
        tier: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Enable or disable a rule. Returns False if the rule does not exist.

        When enabling with a plan given, the plan allowance is enforced.
        """
        now = as_local_naive(now) or datetime.now()
        rule = self.get_rule(rule_id)
        if rule is None:
            return False

        if active and not rule.is_active and tier is not None:
            limit = rule_limit_for_tier(tier, self.tier_rule_limits)
            if limit is not None and self.count_active_rules(rule.user_id) >= limit:
                raise RuleValidationError(
                    [f"Plan '{tier}' allows at most {limit} active rules"]
                )

        conn = self._get_connection()
        try:
            conn.execute(
                "UPDATE rules SET is_active = ?, updated_at = ? WHERE id = ?",
                [active, now, rule_id],
            )
        finally:
            conn.close()
        return True

    def delete_rule(self, rule_id: str) -> bool:
        conn = self._get_connection()
        try:
            deleted = conn.execute(
                "DELETE FROM rules WHERE id = ? RETURNING id",
                [rule_id],
            ).fetchall()
        finally:
            conn.close()
        return bool(deleted)

    def deactivate_over_limit(
        self,
        user_id: str,
        tier: str,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Plan downgrade: keep the oldest active rules up to the new allowance,
        deactivate the rest. Returns the ids that were deactivated.
        """
        limit = rule_limit_for_tier(tier, self.tier_rule_limits)
        if limit is None:
            return []

        active = self.list_active_rules(user_id)
        excess = [r.id for r in active[limit:]]
        if not excess:
            return []

        now = as_local_naive(now) or datetime.now()
        placeholders = ", ".join(["?"] * len(excess))
        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                UPDATE rules
                SET is_active = false, updated_at = ?
                WHERE id IN ({placeholders})
                """,
                [now] + excess,
            )
        finally:
            conn.close()

        logger.info(
            f"Plan '{tier}' downgrade for user {user_id}: deactivated {len(excess)} rules"
        )
        return excess


def _row_to_rule(row: Dict[str, Any]) -> Rule:
    return Rule(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        type=row["type"],
        conditions=RuleCondition(
            metric=row["metric"],
            operator=row["operator"],
            value=float(row["value"]),
            min_samples=row["min_samples"],
            time_window=row["time_window"],
        ),
        actions=RuleActions(
            stop_ad=bool(row["stop_ad"]),
            notify=bool(row["notify"]),
            notify_channel=row["notify_channel"],
            custom_message=row["custom_message"],
        ),
        target_account_ids=_id_list(row["target_account_ids"]),
        target_campaign_ids=_id_list(row["target_campaign_ids"]),
        target_ad_ids=_id_list(row["target_ad_ids"]),
        is_active=bool(row["is_active"]),
        trigger_count=int(row["trigger_count"] or 0),
        last_triggered_at=row["last_triggered_at"],
        created_at=row["created_at"],
    )


def _id_list(raw: Optional[str]) -> List[str]:
    """Target id columns hold JSON arrays."""
    if not raw:
        return []
    return [str(x) for x in json.loads(raw)]
