"""
Savings Estimator: money saved by stopping an ad now.

The budget period ends at 18:00 local time every day (business policy).
"""
from datetime import datetime, time

END_OF_DAY = time(18, 0)


def calculate_savings(spent_per_minute: float, minutes_remaining: float) -> float:
    """Projected savings; 0 unless both inputs are strictly positive."""
    if spent_per_minute <= 0 or minutes_remaining <= 0:
        return 0.0
    return spent_per_minute * minutes_remaining


def minutes_until_end_of_day(now: datetime) -> int:
    """Whole minutes from now until 18:00 the same day, 0 at/after 18:00."""
    end_of_day = datetime.combine(now.date(), END_OF_DAY, tzinfo=now.tzinfo)
    if now >= end_of_day:
        return 0
    return int((end_of_day - now).total_seconds() // 60)


def elapsed_minutes_since_midnight(now: datetime) -> int:
    return now.hour * 60 + now.minute


def spend_per_minute(current_spend: float, now: datetime) -> float:
    """Average spend rate since midnight; 0 when no time has elapsed."""
    elapsed = elapsed_minutes_since_midnight(now)
    if elapsed <= 0:
        return 0.0
    return current_spend / elapsed


def estimate_saved_amount(current_spend: float, now: datetime) -> float:
    return calculate_savings(
        spend_per_minute(current_spend, now),
        minutes_until_end_of_day(now),
    )
