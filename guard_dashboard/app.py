"""
Ads Guard Dashboard API
Flask JSON endpoints behind the user-facing savings widgets, logs page and undo button.
"""

from datetime import timedelta
from typing import Optional

from flask import Flask

from guard_dashboard.routes import register_blueprints
from guard_engine.action_log import ActionLog
from guard_engine.config_loader import EngineConfig, load_engine_config
from guard_engine.logging_config import setup_logging
from guard_engine.rule_store import RuleStore
from guard_engine.settings import get_settings
from guard_engine.warehouse import ensure_warehouse
from guard_radar.revert import RevertProtocol

logger = setup_logging(__name__)


def create_app(
    db_path: Optional[str] = None,
    engine_config: Optional[EngineConfig] = None,
):
    """
    Create and configure Flask application.

    Args:
        db_path: DuckDB warehouse file (defaults to WAREHOUSE_DUCKDB_PATH)
        engine_config: Engine config (defaults to GUARD_ENGINE_CONFIG YAML, or built-in defaults)

    Returns:
        Flask app instance
    """
    settings = get_settings()
    db_path = db_path or settings.warehouse_duckdb_path
    if engine_config is None:
        engine_config = load_engine_config(settings.engine_config_path)

    app = Flask(__name__)
    app.secret_key = settings.dashboard_secret_key
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=24)

    ensure_warehouse(db_path)

    action_log = ActionLog(db_path)
    app.config["DB_PATH"] = db_path
    app.config["ENGINE_CONFIG"] = engine_config
    app.config["ACTION_LOG"] = action_log
    app.config["RULE_STORE"] = RuleStore(db_path, tier_rule_limits=engine_config.tier_rule_limits)
    app.config["REVERT_PROTOCOL"] = RevertProtocol(action_log)

    register_blueprints(app)

    logger.info(f"Dashboard API ready: warehouse={db_path}")
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True, host="0.0.0.0", port=5000)
