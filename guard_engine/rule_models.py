"""
Rule drafts submitted by users, validated before they are stored.

Usage:
    from guard_engine.rule_models import parse_rule_draft, RuleValidationError

    try:
        draft = parse_rule_draft(payload)
    except RuleValidationError as e:
        for msg in e.errors:
            print(f"  - {msg}")
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .models import RuleCondition, RuleType, TIME_WINDOWS

# Metric name and comparison stored alongside each rule type
DEFAULT_CONDITIONS: Dict[RuleType, Tuple[str, str]] = {
    RuleType.CPL_LIMIT: ("cpl", ">"),
    RuleType.MIN_CTR: ("ctr", "<"),
    RuleType.FAST_SPEND: ("spent_speed", ">"),
    RuleType.SPEND_NO_LEADS: ("spent_no_leads", ">"),
    RuleType.BUDGET_LIMIT: ("spent", ">"),
    RuleType.LOW_IMPRESSIONS: ("impressions", "<"),
    RuleType.CLICKS_NO_LEADS: ("clicks", ">="),
}

TIER_FREEMIUM = "freemium"
DEFAULT_TIER_LIMITS: Dict[str, Optional[int]] = {"freemium": 2, "start": 10, "pro": None}


class RuleValidationError(ValueError):
    """Rule draft rejected; `errors` holds one message per problem."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DraftActions(BaseModel):
    stop_ad: bool = False
    notify: bool = True
    notify_channel: Optional[str] = None
    custom_message: Optional[str] = None


class RuleDraft(BaseModel):
    name: str
    type: RuleType
    value: float
    min_samples: Optional[int] = None
    time_window: Optional[str] = None
    actions: DraftActions = DraftActions()

    target_account_ids: List[str]
    target_campaign_ids: List[str] = Field(default_factory=list)
    target_ad_ids: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("name must not be empty")
        return v2

    @field_validator("value")
    @classmethod
    def value_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("min_samples")
    @classmethod
    def min_samples_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("min_samples must be at least 1")
        return v

    @field_validator("time_window")
    @classmethod
    def known_time_window(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in TIME_WINDOWS:
            raise ValueError(f"time_window must be one of {', '.join(TIME_WINDOWS)}")
        return v

    @field_validator("target_account_ids")
    @classmethod
    def has_target_accounts(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one target account is required")
        return v

    @model_validator(mode="after")
    def ctr_is_percentage(self) -> "RuleDraft":
        if self.type is RuleType.MIN_CTR and self.value > 100:
            raise ValueError("min_ctr value must be at most 100")
        return self

    def to_condition(self) -> RuleCondition:
        metric, operator = DEFAULT_CONDITIONS[self.type]
        return RuleCondition(
            metric=metric,
            operator=operator,
            value=self.value,
            min_samples=self.min_samples,
            time_window=self.time_window,
        )


def parse_rule_draft(data: Any) -> RuleDraft:
    if isinstance(data, RuleDraft):
        return data
    try:
        return RuleDraft.model_validate(data)
    except ValidationError as e:
        messages = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise RuleValidationError(messages) from e


def rule_limit_for_tier(
    tier: Optional[str],
    limits: Optional[Dict[str, Optional[int]]] = None,
) -> Optional[int]:
    """Active-rule allowance for a plan; None means unlimited. Unknown plans get freemium limits."""
    limits = DEFAULT_TIER_LIMITS if limits is None else limits
    if tier in limits:
        return limits[tier]
    return limits.get(TIER_FREEMIUM, DEFAULT_TIER_LIMITS[TIER_FREEMIUM])


def can_auto_stop(
    tier: Optional[str],
    limits: Optional[Dict[str, Optional[int]]] = None,
) -> bool:
    """Freemium (and unknown plans, which fall back to freemium) only notify."""
    limits = DEFAULT_TIER_LIMITS if limits is None else limits
    return tier in limits and tier != TIER_FREEMIUM
