"""
Condition Evaluator tests.

Covers every rule type, strict threshold boundaries (clicks_no_leads is
inclusive), zero-denominator policy and unknown rule types.

Run: pytest tools/testing/test_conditions.py
"""

from datetime import datetime, timedelta

import pytest

from guard_engine.conditions import (
    EvaluationContext,
    click_through_rate,
    cost_per_lead,
    evaluate_condition,
    percent_of_budget_spent,
)
from guard_engine.models import MetricsSnapshot, RuleCondition, SpendSnapshot


def cond(value, **kw):
    return RuleCondition(metric="m", operator=">", value=value, **kw)


def snap(spent=0, leads=0, impressions=0, clicks=0):
    return MetricsSnapshot(spent=spent, leads=leads, impressions=impressions, clicks=clicks)


T0 = datetime(2026, 10, 18, 11, 45)


def test_cpl_limit_scenario():
    """spent 3000 / 5 leads = CPL 600 > 500"""
    metrics = snap(spent=3000, leads=5, impressions=10000, clicks=200)
    assert cost_per_lead(metrics) == 600
    assert evaluate_condition("cpl_limit", cond(500), metrics) is True


def test_cpl_limit_at_threshold_does_not_fire():
    assert evaluate_condition("cpl_limit", cond(500), snap(spent=2500, leads=5)) is False


@pytest.mark.parametrize("spent", [0, 1, 500, 10_000_000])
def test_cpl_limit_never_fires_without_leads(spent):
    assert evaluate_condition("cpl_limit", cond(1), snap(spent=spent, leads=0)) is False
    assert cost_per_lead(snap(spent=spent, leads=0)) is None


def test_min_ctr():
    metrics = snap(impressions=10000, clicks=100)  # 1%
    assert click_through_rate(metrics) == pytest.approx(1.0)
    assert evaluate_condition("min_ctr", cond(1.5), metrics) is True
    assert evaluate_condition("min_ctr", cond(1.0), metrics) is False, "Strict <"
    assert evaluate_condition("min_ctr", cond(0.5), metrics) is False


@pytest.mark.parametrize("clicks", [0, 5, 1000])
def test_min_ctr_never_fires_without_impressions(clicks):
    assert evaluate_condition("min_ctr", cond(100), snap(impressions=0, clicks=clicks)) is False


def test_fast_spend_scenario():
    history = [
        SpendSnapshot(spent=750, timestamp=T0),
        SpendSnapshot(spent=1000, timestamp=T0 + timedelta(minutes=10)),
    ]
    ctx = EvaluationContext(spend_history=history, daily_budget=1000)
    assert percent_of_budget_spent(history, 1000) == pytest.approx(25.0)
    assert evaluate_condition("fast_spend", cond(20), snap(), ctx) is True
    assert evaluate_condition("fast_spend", cond(25), snap(), ctx) is False, "Strict >"


def test_fast_spend_uses_oldest_and_newest_by_timestamp():
    history = [
        SpendSnapshot(spent=1000, timestamp=T0 + timedelta(minutes=10)),
        SpendSnapshot(spent=900, timestamp=T0 + timedelta(minutes=5)),
        SpendSnapshot(spent=750, timestamp=T0),
    ]
    assert percent_of_budget_spent(history, 1000) == pytest.approx(25.0)


def test_fast_spend_needs_two_samples():
    ctx = EvaluationContext(spend_history=[SpendSnapshot(spent=1000, timestamp=T0)], daily_budget=1000)
    assert evaluate_condition("fast_spend", cond(20), snap(), ctx) is False
    assert evaluate_condition("fast_spend", cond(20), snap()) is False, "No context"


@pytest.mark.parametrize("budget", [None, 0, -100])
def test_fast_spend_needs_positive_budget(budget):
    history = [
        SpendSnapshot(spent=0, timestamp=T0),
        SpendSnapshot(spent=1000, timestamp=T0 + timedelta(minutes=10)),
    ]
    ctx = EvaluationContext(spend_history=history, daily_budget=budget)
    assert evaluate_condition("fast_spend", cond(1), snap(), ctx) is False


def test_spend_no_leads():
    assert evaluate_condition("spend_no_leads", cond(500), snap(spent=501)) is True
    assert evaluate_condition("spend_no_leads", cond(500), snap(spent=500)) is False
    assert evaluate_condition("spend_no_leads", cond(500), snap(spent=5000, leads=1)) is False


def test_budget_limit():
    assert evaluate_condition("budget_limit", cond(1000), snap(spent=1000.01)) is True
    assert evaluate_condition("budget_limit", cond(1000), snap(spent=1000)) is False


def test_low_impressions():
    assert evaluate_condition("low_impressions", cond(100), snap(impressions=99)) is True
    assert evaluate_condition("low_impressions", cond(100), snap(impressions=100)) is False


def test_clicks_no_leads_is_inclusive():
    assert evaluate_condition("clicks_no_leads", cond(50), snap(clicks=50)) is True
    assert evaluate_condition("clicks_no_leads", cond(50), snap(clicks=49)) is False
    assert evaluate_condition("clicks_no_leads", cond(50), snap(clicks=80, leads=2)) is False


@pytest.mark.parametrize("rule_type", ["", "cpc_limit", "CPL_LIMIT", None])
def test_unknown_rule_type_never_fires(rule_type):
    metrics = snap(spent=1e9, leads=0, impressions=0, clicks=1e9)
    assert evaluate_condition(rule_type, cond(0.0001), metrics) is False
