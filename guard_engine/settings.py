import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    # Warehouse (DuckDB file holding accounts, metrics, rules, action logs)
    warehouse_duckdb_path: str

    # Logging
    log_dir: str
    log_level: str

    # Optional YAML with engine tuning, plan limits and email alerts
    engine_config_path: Optional[str]

    # Dashboard API
    dashboard_secret_key: str


def get_settings() -> Settings:
    load_dotenv()  # reads .env if present

    return Settings(
        warehouse_duckdb_path=os.getenv("WAREHOUSE_DUCKDB_PATH", "./warehouse.duckdb"),
        log_dir=os.getenv("GUARD_LOG_DIR", "logs"),
        log_level=os.getenv("GUARD_LOG_LEVEL", "INFO").strip().upper(),
        engine_config_path=os.getenv("GUARD_ENGINE_CONFIG") or None,
        dashboard_secret_key=os.getenv(
            "DASHBOARD_SECRET_KEY", "dev-secret-key-change-in-production"
        ),
    )
