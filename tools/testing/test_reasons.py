"""
Reason Formatter tests.

Run: pytest tools/testing/test_reasons.py
"""

from guard_engine.models import MetricsSnapshot, RuleCondition
from guard_engine.reasons import build_reason


def cond(value, time_window=None):
    return RuleCondition(metric="m", operator=">", value=value, time_window=time_window)


METRICS = MetricsSnapshot(spent=3000, leads=5, impressions=10000, clicks=200)


def test_cpl_reason_has_value_and_threshold():
    reason = build_reason("cpl_limit", cond(500), METRICS)
    assert "600" in reason
    assert "500" in reason
    assert "₽" in reason


def test_currency_is_configurable():
    reason = build_reason("budget_limit", cond(2500), METRICS, currency="$")
    assert reason == "Spend 3000$ exceeded the 2500$ budget"


def test_ctr_reason():
    reason = build_reason("min_ctr", cond(3), METRICS)
    assert "2.00%" in reason
    assert "3%" in reason


def test_fast_spend_reason_with_and_without_percent():
    assert "25%" in build_reason("fast_spend", cond(20), METRICS, percent_spent=25.0)
    assert "20%" in build_reason("fast_spend", cond(20), METRICS)


def test_clicks_no_leads_window_labels():
    m = MetricsSnapshot(spent=100, leads=0, impressions=1000, clicks=60)
    assert "today" in build_reason("clicks_no_leads", cond(50), m)
    assert "today" in build_reason("clicks_no_leads", cond(50, "daily"), m, time_window="daily")
    assert "last 24h" in build_reason("clicks_no_leads", cond(50), m, time_window="24h")
    assert "since launch" in build_reason("clicks_no_leads", cond(50), m, time_window="since_launch")


def test_other_types_render_values():
    m = MetricsSnapshot(spent=750.5, leads=0, impressions=40, clicks=3)
    assert build_reason("spend_no_leads", cond(500), m) == "Spent 750.5₽ with no leads (limit 500₽)"
    assert build_reason("low_impressions", cond(100), m) == "40 impressions, below the 100 minimum"


def test_unknown_type_is_generic():
    assert build_reason("cpc_limit", cond(1), METRICS) == "Rule cpc_limit triggered"


def test_no_internal_field_names():
    for rule_type in ("cpl_limit", "min_ctr", "fast_spend", "spend_no_leads",
                      "budget_limit", "low_impressions", "clicks_no_leads"):
        reason = build_reason(rule_type, cond(10), METRICS)
        assert "_" not in reason, f"{rule_type}: {reason}"
