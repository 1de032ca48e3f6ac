"""
API routes - undo, savings widgets, activity, logs, analytics, rule creation.

Every endpoint is scoped to a user: `user_id` comes from the query string
(GET) or the JSON body (POST) and is required.
"""

from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, jsonify, request

from guard_engine import analytics
from guard_engine.logging_config import setup_logging
from guard_engine.rule_models import RuleValidationError
from guard_radar.revert import REASON_FORBIDDEN, REASON_NOT_FOUND

logger = setup_logging(__name__)

bp = Blueprint('api', __name__)

DEFAULT_ANALYTICS_DAYS = 30
MAX_HISTORY_DAYS = 90
MAX_LOGS = 500


def _missing_user():
    return jsonify({"success": False, "error": "user_id is required"}), 400


def _bad_request(message):
    return jsonify({"success": False, "error": message}), 400


def _int_arg(name, default, minimum=1, maximum=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    if maximum is not None:
        value = min(value, maximum)
    return value


def _entry_json(entry):
    return entry.to_dict()


@bp.route("/actions/<action_log_id>/revert", methods=["POST"])
def revert_action(action_log_id):
    """
    Undo an automatic stop.

    Request JSON:
        {"user_id": str}

    Returns JSON:
        {"success": bool, "reason": str, "message": str}
        200 ok, 404 not found, 403 other user's action, 409 any other refusal
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id:
        return _missing_user()

    protocol = current_app.config["REVERT_PROTOCOL"]
    result = protocol.revert(action_log_id, reverted_by="user", owner_id=user_id)

    if result.success:
        status = 200
    elif result.reason == REASON_NOT_FOUND:
        status = 404
    elif result.reason == REASON_FORBIDDEN:
        status = 403
    else:
        status = 409
    return jsonify(result.to_dict()), status


@bp.route("/savings/today", methods=["GET"])
def savings_today():
    user_id = request.args.get("user_id")
    if not user_id:
        return _missing_user()

    now = datetime.now()
    entries = current_app.config["ACTION_LOG"].list_for_user(
        user_id, since=analytics.start_of_day(now)
    )
    return jsonify({"success": True, "amount": analytics.saved_today(entries, now)})


@bp.route("/savings/history", methods=["GET"])
def savings_history():
    user_id = request.args.get("user_id")
    if not user_id:
        return _missing_user()

    try:
        days = _int_arg("days", 7, maximum=MAX_HISTORY_DAYS)
    except ValueError as e:
        return _bad_request(str(e))

    now = datetime.now()
    since = analytics.start_of_day(now) - timedelta(days=days - 1)
    entries = current_app.config["ACTION_LOG"].list_for_user(user_id, since=since)
    return jsonify({"success": True, "history": analytics.saved_history(entries, now, days)})


@bp.route("/activity", methods=["GET"])
def activity():
    """Today's counters plus the recent events feed."""
    user_id = request.args.get("user_id")
    if not user_id:
        return _missing_user()

    try:
        limit = _int_arg("limit", 10, maximum=MAX_LOGS)
    except ValueError as e:
        return _bad_request(str(e))

    now = datetime.now()
    action_log = current_app.config["ACTION_LOG"]
    todays = action_log.list_for_user(user_id, since=analytics.start_of_day(now))
    events = analytics.recent_events(
        action_log.list_for_user(user_id),
        action_type=request.args.get("action_type") or None,
        account_id=request.args.get("account_id") or None,
        limit=limit,
    )
    return jsonify({
        "success": True,
        "stats": analytics.activity_stats(todays, now),
        "events": [_entry_json(e) for e in events],
    })


@bp.route("/logs", methods=["GET"])
def logs():
    """
    Logs page.

    Query params:
        user_id (required), action_type, account_id, rule_id, status, search, limit
    """
    user_id = request.args.get("user_id")
    if not user_id:
        return _missing_user()

    try:
        limit = _int_arg("limit", 50, maximum=MAX_LOGS)
    except ValueError as e:
        return _bad_request(str(e))

    entries = current_app.config["ACTION_LOG"].get_logs(
        user_id,
        action_type=request.args.get("action_type") or None,
        account_id=request.args.get("account_id") or None,
        rule_id=request.args.get("rule_id") or None,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
        limit=limit,
    )
    return jsonify({"success": True, "logs": [_entry_json(e) for e in entries]})


@bp.route("/analytics", methods=["GET"])
def analytics_page():
    """Savings series, type breakdown, triggers by rule, top ads and ROI for [start, end]."""
    user_id = request.args.get("user_id")
    if not user_id:
        return _missing_user()

    today = date.today()
    try:
        end = date.fromisoformat(request.args["end"]) if request.args.get("end") else today
        start = (
            date.fromisoformat(request.args["start"])
            if request.args.get("start")
            else end - timedelta(days=DEFAULT_ANALYTICS_DAYS - 1)
        )
    except ValueError:
        return _bad_request("start/end must be YYYY-MM-DD dates")
    if start > end:
        return _bad_request("start must not be after end")

    since = datetime(start.year, start.month, start.day)
    until = datetime(end.year, end.month, end.day) + timedelta(days=1)
    entries = current_app.config["ACTION_LOG"].list_for_user(user_id, since=since, until=until)
    rule_names = current_app.config["RULE_STORE"].rule_names([e.rule_id for e in entries])

    report = analytics.analytics_report(entries, start, end, rule_names)
    report["success"] = True
    return jsonify(report)


@bp.route("/rules", methods=["POST"])
def create_rule():
    """
    Create a rule.

    Request JSON:
        {"user_id": str, "tier": "freemium" | "start" | "pro", "rule": {...RuleDraft}}
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id:
        return _missing_user()

    try:
        rule = current_app.config["RULE_STORE"].create_rule(
            user_id,
            data.get("rule") or {},
            tier=data.get("tier") or "freemium",
        )
    except RuleValidationError as e:
        return jsonify({"success": False, "errors": e.errors}), 400

    return jsonify({
        "success": True,
        "rule": {
            "id": rule.id,
            "name": rule.name,
            "type": rule.type,
            "stop_ad": rule.actions.stop_ad,
            "notify": rule.actions.notify,
            "is_active": rule.is_active,
        },
    }), 201
