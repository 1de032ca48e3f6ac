"""
Ads Guard rule engine

Evaluates user automation rules against ad metrics:
- Condition evaluation, savings estimate, reason text
- Stop / notify actions with an audit trail
- Savings and activity analytics
"""

__version__ = "1.0.0"

from .action_log import ActionLog
from .ad_platform import AdPlatformClient, DryRunAdPlatform
from .conditions import EvaluationContext, evaluate_condition
from .metrics_store import MetricsStore
from .models import ActionLogEntry, MetricsSnapshot, Rule, RuleType, SpendSnapshot
from .orchestrator import RuleOrchestrator, SweepSummary, run_rule_sweep
from .rule_models import RuleDraft, RuleValidationError
from .rule_store import RuleStore

__all__ = [
    "ActionLog",
    "ActionLogEntry",
    "AdPlatformClient",
    "DryRunAdPlatform",
    "EvaluationContext",
    "MetricsSnapshot",
    "MetricsStore",
    "Rule",
    "RuleDraft",
    "RuleOrchestrator",
    "RuleStore",
    "RuleType",
    "RuleValidationError",
    "SpendSnapshot",
    "SweepSummary",
    "evaluate_condition",
    "run_rule_sweep",
]
