"""
Savings Estimator tests.

Run: pytest tools/testing/test_savings.py
"""

from datetime import datetime, timedelta

import pytest

from guard_engine.savings import (
    calculate_savings,
    estimate_saved_amount,
    minutes_until_end_of_day,
    spend_per_minute,
)

DAY = datetime(2026, 10, 18)


@pytest.mark.parametrize("rate,minutes", [(0, 100), (5, 0), (-1, 100), (5, -3), (0, 0)])
def test_savings_zero_unless_both_positive(rate, minutes):
    assert calculate_savings(rate, minutes) == 0


def test_savings_is_rate_times_minutes():
    assert calculate_savings(2.5, 4) == 10.0
    assert calculate_savings(0.1, 360) == 0.1 * 360


def test_minutes_until_end_of_day_boundaries():
    assert minutes_until_end_of_day(DAY) == 1080
    assert minutes_until_end_of_day(DAY.replace(hour=17, minute=59)) == 1
    assert minutes_until_end_of_day(DAY.replace(hour=17, minute=59, second=30)) == 0
    assert minutes_until_end_of_day(DAY.replace(hour=18)) == 0
    assert minutes_until_end_of_day(DAY.replace(hour=23, minute=59)) == 0


def test_minutes_until_end_of_day_non_increasing():
    previous = None
    t = DAY
    while t.date() == DAY.date():
        m = minutes_until_end_of_day(t)
        if previous is not None:
            assert m <= previous, f"Increased at {t}"
        previous = m
        t += timedelta(minutes=7)


def test_spend_per_minute_at_midnight_is_zero():
    assert spend_per_minute(500, DAY) == 0.0


def test_estimate_saved_amount_at_noon():
    # 720 spent over 720 minutes -> 1/min, 360 minutes left
    assert estimate_saved_amount(720, DAY.replace(hour=12)) == pytest.approx(360.0)


def test_estimate_saved_amount_after_cutoff():
    assert estimate_saved_amount(5000, DAY.replace(hour=19)) == 0.0
