"""
Condition Evaluator: decides whether a rule fires for one metrics snapshot.

Catalogue (strict comparisons unless noted):
  cpl_limit        spent/leads > value             (leads = 0 never fires)
  min_ctr          100*clicks/impressions < value  (impressions = 0 never fires)
  fast_spend       % of daily budget spent across the sample window > value
                   (<2 samples, or budget missing/<=0 never fires)
  spend_no_leads   spent > value AND leads = 0
  budget_limit     spent > value
  low_impressions  impressions < value
  clicks_no_leads  clicks >= value AND leads = 0   (inclusive)

Unknown rule types never fire. Nothing here raises on data.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .models import MetricsSnapshot, RuleCondition, RuleType, SpendSnapshot


@dataclass
class EvaluationContext:
    """Time-series inputs used only by fast_spend."""
    spend_history: List[SpendSnapshot] = field(default_factory=list)
    daily_budget: Optional[float] = None


def cost_per_lead(metrics: MetricsSnapshot) -> Optional[float]:
    if metrics.leads > 0:
        return metrics.spent / metrics.leads
    return None


def click_through_rate(metrics: MetricsSnapshot) -> Optional[float]:
    if metrics.impressions > 0:
        return metrics.clicks / metrics.impressions * 100
    return None


def percent_of_budget_spent(
    spend_history: List[SpendSnapshot],
    daily_budget: Optional[float],
) -> Optional[float]:
    """Share of the daily budget spent between the oldest and newest sample."""
    if not spend_history or len(spend_history) < 2:
        return None
    if not daily_budget or daily_budget <= 0:
        return None
    ordered = sorted(spend_history, key=lambda s: s.timestamp)
    spent_diff = ordered[-1].spent - ordered[0].spent
    return spent_diff / daily_budget * 100


def _cpl_limit(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    cpl = cost_per_lead(m)
    return cpl is not None and cpl > c.value


def _min_ctr(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    ctr = click_through_rate(m)
    return ctr is not None and ctr < c.value


def _fast_spend(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    pct = percent_of_budget_spent(ctx.spend_history, ctx.daily_budget)
    return pct is not None and pct > c.value


def _spend_no_leads(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    return m.spent > c.value and m.leads == 0


def _budget_limit(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    return m.spent > c.value


def _low_impressions(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    return m.impressions < c.value


def _clicks_no_leads(c: RuleCondition, m: MetricsSnapshot, ctx: EvaluationContext) -> bool:
    return m.clicks >= c.value and m.leads == 0


_EVALUATORS: Dict[RuleType, Callable[[RuleCondition, MetricsSnapshot, EvaluationContext], bool]] = {
    RuleType.CPL_LIMIT: _cpl_limit,
    RuleType.MIN_CTR: _min_ctr,
    RuleType.FAST_SPEND: _fast_spend,
    RuleType.SPEND_NO_LEADS: _spend_no_leads,
    RuleType.BUDGET_LIMIT: _budget_limit,
    RuleType.LOW_IMPRESSIONS: _low_impressions,
    RuleType.CLICKS_NO_LEADS: _clicks_no_leads,
}


def evaluate_condition(
    rule_type: str,
    condition: RuleCondition,
    metrics: MetricsSnapshot,
    context: Optional[EvaluationContext] = None,
) -> bool:
    """Return True if the rule should trigger for these metrics."""
    kind = RuleType.parse(rule_type)
    if kind is None:
        return False
    evaluator = _EVALUATORS.get(kind)
    if evaluator is None:
        return False
    return evaluator(condition, metrics, context or EvaluationContext())
