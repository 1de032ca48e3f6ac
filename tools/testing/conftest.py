"""
Shared fixtures for the Ads Guard test suite.

Run: pytest tools/testing
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from guard_engine.models import (
    ACTION_STOPPED_AND_NOTIFIED,
    ActionLogEntry,
    MetricsSnapshot,
    STATUS_SUCCESS,
)
from guard_engine.warehouse import ensure_warehouse


@pytest.fixture
def db_path(tmp_path):
    """Fresh DuckDB warehouse with all tables created."""
    path = str(tmp_path / "warehouse.duckdb")
    ensure_warehouse(path)
    return path


@pytest.fixture
def now():
    return datetime(2026, 10, 18, 12, 0)


def make_entry(**overrides):
    """Action log entry with sensible defaults for tests."""
    fields = dict(
        user_id="user-1",
        rule_id="rule-1",
        account_id="acc-1",
        ad_id="ad-1",
        ad_name="Winter sale banner",
        campaign_name="Winter sale",
        action_type=ACTION_STOPPED_AND_NOTIFIED,
        reason="CPL 600₽ exceeded the 500₽ limit",
        metrics_snapshot=MetricsSnapshot(
            spent=3000, leads=5, impressions=10000, clicks=200, cpl=600.0, ctr=2.0
        ),
        saved_amount=1500.0,
        status=STATUS_SUCCESS,
        created_at=datetime(2026, 10, 18, 12, 0),
    )
    fields.update(overrides)
    return ActionLogEntry(**fields)
