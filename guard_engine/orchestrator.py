"""
Rule Orchestrator: the periodic sweep that applies user rules to ad metrics.

Flow (once per scheduler invocation):
  1. Load active ad accounts; nothing to do if none
  2. For each owning user (once per sweep, however many accounts they own):
     load active rules
  3. For each rule x each of its target accounts x ad with a bucket for today:
     a. skip ads outside the rule's ad / campaign allowlists
     b. skip the ad if min_samples realtime samples are missing (last 24h)
     c. build the metrics snapshot (aggregated window for clicks_no_leads,
        spend history + daily budget for fast_spend)
     d. evaluate; stop here if the rule does not fire
     e. savings, action type, reason
     f. stop the ad if requested (failure is recorded, not raised)
     g. write one action log entry
     h. increment the rule's trigger count
     i. notify if requested (critical when the ad was also stopped)
  4. An error while processing one user is logged and the sweep moves on

An aware `now` is converted to naive local time, the form timestamps are stored in.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from .action_log import ActionLog
from .ad_platform import AdPlatformClient
from .aggregator import has_rate_data, realtime_window, since_date_for_window
from .conditions import EvaluationContext, evaluate_condition, percent_of_budget_spent
from .config_loader import EngineConfig
from .logging_config import setup_logging
from .metrics_store import MetricsStore
from .models import (
    ActionLogEntry,
    MetricsSnapshot,
    PRIORITY_CRITICAL,
    PRIORITY_STANDARD,
    Rule,
    RuleType,
    STATUS_FAILED,
    STATUS_SUCCESS,
    TIME_WINDOW_DAILY,
    as_local_naive,
    determine_action_type,
)
from .notifications import NotificationChannel, NullNotifier, RuleNotificationEvent
from .reasons import build_reason
from .rule_store import RuleStore
from .savings import estimate_saved_amount

logger = setup_logging(__name__)

UNKNOWN_ERROR = "Unknown error"


@dataclass
class SweepSummary:
    """Counters for one sweep, used for logging."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    accounts: int = 0
    users_processed: int = 0
    users_failed: int = 0
    rules_evaluated: int = 0
    triggers: int = 0
    stops_succeeded: int = 0
    stops_failed: int = 0
    notifications_sent: int = 0
    action_log_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["started_at"] = self.started_at.isoformat()
        d["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return d


class RuleOrchestrator:
    """
    Applies every active rule to the current metrics of its target ads.

    Collaborators are injected so tests can pass mocks.
    """

    def __init__(
        self,
        metrics_store: MetricsStore,
        rule_store: RuleStore,
        action_log: ActionLog,
        ad_platform: AdPlatformClient,
        notifier: Optional[NotificationChannel] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.metrics_store = metrics_store
        self.rule_store = rule_store
        self.action_log = action_log
        self.ad_platform = ad_platform
        self.notifier = notifier or NullNotifier()
        self.config = config or EngineConfig()

    def check_all_rules(self, now: Optional[datetime] = None) -> SweepSummary:
        """Run one sweep. `now` is fixed for the whole sweep."""
        now = as_local_naive(now) or datetime.now()
        summary = SweepSummary(started_at=now)

        accounts = self.metrics_store.list_active_accounts()
        summary.accounts = len(accounts)
        if not accounts:
            logger.info("Rule sweep: no active accounts")
            summary.finished_at = datetime.now()
            return summary

        # owners in first-seen order, each processed once
        user_ids = list(dict.fromkeys(acc["user_id"] for acc in accounts))

        logger.info(
            f"Rule sweep started: accounts={len(accounts)}, users={len(user_ids)}"
        )

        for user_id in user_ids:
            try:
                self._process_user(user_id, now, summary)
                summary.users_processed += 1
            except Exception as e:
                summary.users_failed += 1
                logger.error(f"Rule sweep failed for user {user_id}: {e}", exc_info=True)

        summary.finished_at = datetime.now()
        logger.info(
            f"Rule sweep complete: users={summary.users_processed}, "
            f"failed_users={summary.users_failed}, triggers={summary.triggers}, "
            f"stops={summary.stops_succeeded}, failed_stops={summary.stops_failed}, "
            f"notifications={summary.notifications_sent}"
        )
        logger.debug(f"Rule sweep summary: {summary.to_dict()}")
        return summary

    def _process_user(
        self,
        user_id: str,
        now: datetime,
        summary: SweepSummary,
    ) -> None:
        rules = self.rule_store.list_active_rules(user_id)
        if not rules:
            logger.debug(f"User {user_id}: no active rules")
            return

        today = now.date()
        metrics_cache: Dict[str, List[Dict[str, Any]]] = {}

        for rule in rules:
            summary.rules_evaluated += 1
            for account_id in rule.target_account_ids:
                if account_id not in metrics_cache:
                    metrics_cache[account_id] = self.metrics_store.list_today_metrics(account_id, today)

                for row in metrics_cache[account_id]:
                    self._process_ad(rule, account_id, row, now, summary)

    def _process_ad(
        self,
        rule: Rule,
        account_id: str,
        row: Dict[str, Any],
        now: datetime,
        summary: SweepSummary,
    ) -> None:
        ad_id = row["ad_id"]

        if rule.target_ad_ids and ad_id not in rule.target_ad_ids:
            return
        if rule.target_campaign_ids and row.get("campaign_id") not in rule.target_campaign_ids:
            return

        condition = rule.conditions
        if condition.min_samples:
            since = now - timedelta(hours=self.config.min_samples_window_hours)
            count = self.metrics_store.count_realtime_since(ad_id, since)
            if count < condition.min_samples:
                logger.warning(
                    f"Rule {rule.id}: ad {ad_id} has {count} samples "
                    f"(needs {condition.min_samples}), skipped"
                )
                return

        daily = MetricsSnapshot.from_dict(row)
        snapshot = self._build_snapshot(rule, ad_id, daily, now.date())
        context = self._build_context(rule, ad_id, now)

        if not evaluate_condition(rule.type, condition, snapshot, context):
            return

        self._apply_trigger(rule, account_id, row, daily, snapshot, context, now, summary)

    def _build_snapshot(
        self,
        rule: Rule,
        ad_id: str,
        daily: MetricsSnapshot,
        today: date,
    ) -> MetricsSnapshot:
        window = rule.conditions.time_window
        if (
            RuleType.parse(rule.type) is RuleType.CLICKS_NO_LEADS
            and window
            and window != TIME_WINDOW_DAILY
        ):
            return self.metrics_store.get_aggregated_metrics(
                ad_id, since_date_for_window(window, today)
            )
        return daily

    def _build_context(self, rule: Rule, ad_id: str, now: datetime) -> EvaluationContext:
        if RuleType.parse(rule.type) is not RuleType.FAST_SPEND:
            return EvaluationContext()

        since = now - timedelta(minutes=self.config.realtime_lookback_minutes)
        history = realtime_window(self.metrics_store.list_realtime_since(ad_id, since), since)
        if not has_rate_data(history):
            logger.debug(f"Rule {rule.id}: ad {ad_id} has {len(history)} spend samples")
        return EvaluationContext(
            spend_history=history,
            daily_budget=self.metrics_store.get_campaign_daily_budget(ad_id),
        )

    def _apply_trigger(
        self,
        rule: Rule,
        account_id: str,
        row: Dict[str, Any],
        daily: MetricsSnapshot,
        snapshot: MetricsSnapshot,
        context: EvaluationContext,
        now: datetime,
        summary: SweepSummary,
    ) -> None:
        ad_id = row["ad_id"]
        ad_name = row.get("ad_name") or f"Ad {ad_id}"
        summary.triggers += 1

        saved_amount = estimate_saved_amount(daily.spent, now) if rule.actions.stop_ad else 0.0
        action_type = determine_action_type(rule.actions)
        reason = build_reason(
            rule.type,
            rule.conditions,
            snapshot,
            time_window=rule.conditions.time_window,
            currency=self.config.currency,
            percent_spent=percent_of_budget_spent(context.spend_history, context.daily_budget),
        )
        logger.info(f"Rule {rule.id} '{rule.name}' triggered for ad {ad_id}: {reason}")

        status = STATUS_SUCCESS
        error_message = None
        if rule.actions.stop_ad:
            try:
                token = self.ad_platform.get_valid_access_token(rule.user_id)
                self.ad_platform.stop_ad(token, ad_id, account_id)
                summary.stops_succeeded += 1
                logger.info(f"Stopped ad {ad_id} (account {account_id})")
            except Exception as e:
                status = STATUS_FAILED
                error_message = str(e) or UNKNOWN_ERROR
                summary.stops_failed += 1
                logger.warning(f"Failed to stop ad {ad_id} (account {account_id}): {error_message}")

        entry = ActionLogEntry(
            user_id=rule.user_id,
            rule_id=rule.id,
            account_id=account_id,
            ad_id=ad_id,
            ad_name=ad_name,
            campaign_name=row.get("campaign_name"),
            action_type=action_type,
            reason=reason,
            metrics_snapshot=snapshot.with_ratios(),
            saved_amount=saved_amount,
            status=status,
            error_message=error_message,
            created_at=now,
        )
        log_id = self.action_log.create(entry)
        summary.action_log_ids.append(log_id)

        self.rule_store.increment_trigger_count(rule.id, now)

        if rule.actions.notify:
            self._notify(rule, entry, log_id, summary)

    def _notify(
        self,
        rule: Rule,
        entry: ActionLogEntry,
        log_id: str,
        summary: SweepSummary,
    ) -> None:
        event = RuleNotificationEvent(
            rule_name=rule.name,
            ad_name=entry.ad_name,
            campaign_name=entry.campaign_name,
            reason=entry.reason,
            action_type=entry.action_type,
            saved_amount=entry.saved_amount,
            metrics=entry.metrics_snapshot,
            action_log_id=log_id,
        )
        priority = PRIORITY_CRITICAL if rule.actions.stop_ad else PRIORITY_STANDARD

        try:
            result = self.notifier.send_rule_notification(rule.user_id, event, priority)
        except Exception as e:
            logger.error(f"Notification for rule {rule.id} raised: {e}")
            return

        if result and result.get("sent"):
            summary.notifications_sent += 1
        else:
            reason = (result or {}).get("reason", "unknown")
            logger.warning(f"Notification for rule {rule.id} not sent: {reason}")


def run_rule_sweep(
    db_path: Optional[str] = None,
    config_path: Optional[str] = None,
    ad_platform: Optional[AdPlatformClient] = None,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationChannel] = None,
) -> SweepSummary:
    """
    Scheduler entry point: wire DuckDB stores, config and email alerts, run one sweep.

    Without an ad_platform the sweep runs in dry-run mode. A long-running
    scheduler should pass the same notifier every time so undelivered
    standard notifications carry over to the next sweep.
    """
    from guard_alerts.email_sender import EmailNotifier

    from .ad_platform import DryRunAdPlatform
    from .config_loader import load_engine_config
    from .settings import get_settings
    from .warehouse import ensure_warehouse

    settings = get_settings()
    db_path = db_path or settings.warehouse_duckdb_path
    config = load_engine_config(config_path or settings.engine_config_path)
    ensure_warehouse(db_path)

    orchestrator = RuleOrchestrator(
        metrics_store=MetricsStore(db_path),
        rule_store=RuleStore(db_path, tier_rule_limits=config.tier_rule_limits),
        action_log=ActionLog(db_path),
        ad_platform=ad_platform or DryRunAdPlatform(),
        notifier=notifier or EmailNotifier.from_config(config.email_alerts, currency=config.currency),
        config=config,
    )
    return orchestrator.check_all_rules(now=now)
