from typing import Dict, Optional
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class EmailAlerts(BaseModel):
    enabled: bool = False
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: Optional[str] = None
    # user_id -> recipient address
    recipients: Dict[str, str] = Field(default_factory=dict)
    dashboard_url: str = "http://localhost:5000"


class EngineConfig(BaseModel):
    currency: str = "₽"
    realtime_lookback_minutes: int = 15
    min_samples_window_hours: int = 24
    # None = unlimited
    tier_rule_limits: Dict[str, Optional[int]] = Field(
        default_factory=lambda: {"freemium": 2, "start": 10, "pro": None}
    )
    email_alerts: EmailAlerts = EmailAlerts()

    @field_validator("realtime_lookback_minutes", "min_samples_window_hours")
    @classmethod
    def positive_window(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("time windows must be positive")
        return v


def load_engine_config(path: Optional[str] = None) -> EngineConfig:
    if path is None:
        return EngineConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    data = yaml.safe_load(p.read_text(encoding="utf8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Engine config must be a YAML mapping/object")

    return EngineConfig.model_validate(data)
