"""
Radar Module: Revert Protocol
Undoes a stop recorded in the action log, within 5 minutes of the trigger.

Checks run in a fixed order so the reported reason is deterministic:
  not_found -> (forbidden) -> already_reverted -> timeout -> not_stoppable

Re-enabling the ad on the platform is left to the caller after a
successful revert.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from guard_engine.action_log import ActionLog
from guard_engine.logging_config import setup_logging
from guard_engine.models import ACTION_NOTIFIED, REVERT_WINDOW, STATUS_REVERTED, as_local_naive

logger = setup_logging(__name__)

REASON_OK = "ok"
REASON_NOT_FOUND = "not_found"
REASON_FORBIDDEN = "forbidden"
REASON_ALREADY_REVERTED = "already_reverted"
REASON_TIMEOUT = "timeout"
REASON_NOT_STOPPABLE = "not_stoppable"

REVERT_MESSAGES = {
    REASON_OK: "Stop undone",
    REASON_NOT_FOUND: "Action not found",
    REASON_FORBIDDEN: "This action belongs to another user",
    REASON_ALREADY_REVERTED: "Already undone",
    REASON_TIMEOUT: "Time to undo has expired",
    REASON_NOT_STOPPABLE: "Nothing to undo: the ad was not stopped",
}


@dataclass(frozen=True)
class RevertResult:
    """Outcome of a revert request."""
    success: bool
    reason: str

    @property
    def message(self) -> str:
        return REVERT_MESSAGES.get(self.reason, self.reason)

    def to_dict(self) -> dict:
        return {"success": self.success, "reason": self.reason, "message": self.message}


class RevertProtocol:
    """Guarded success -> reverted transition on action log entries."""

    def __init__(self, action_log: ActionLog):
        self.action_log = action_log

    def revert(
        self,
        action_log_id: str,
        reverted_by: str,
        now: Optional[datetime] = None,
        owner_id: Optional[str] = None,
    ) -> RevertResult:
        """
        Revert a stop.

        Args:
            action_log_id: Entry to revert
            reverted_by: Who asked (user id, "user", "admin", ...)
            now: Current time (defaults to datetime.now())
            owner_id: When given, entries of other users are refused

        Returns:
            RevertResult; never raises for a refused revert
        """
        now = as_local_naive(now) or datetime.now()
        entry = self.action_log.get(action_log_id)

        if entry is None:
            return self._refuse(action_log_id, REASON_NOT_FOUND)

        if owner_id is not None and entry.user_id != owner_id:
            return self._refuse(action_log_id, REASON_FORBIDDEN)

        if entry.status == STATUS_REVERTED:
            return self._refuse(action_log_id, REASON_ALREADY_REVERTED)

        if now - as_local_naive(entry.created_at) > REVERT_WINDOW:
            return self._refuse(action_log_id, REASON_TIMEOUT)

        if entry.action_type == ACTION_NOTIFIED:
            return self._refuse(action_log_id, REASON_NOT_STOPPABLE)

        # Conditional update; a concurrent revert that won the race leaves nothing to update
        if not self.action_log.mark_reverted(action_log_id, reverted_by, now):
            return self._refuse(action_log_id, REASON_ALREADY_REVERTED)

        logger.info(f"Reverted action {action_log_id} (ad {entry.ad_id}) by {reverted_by}")
        return RevertResult(success=True, reason=REASON_OK)

    def _refuse(self, action_log_id: str, reason: str) -> RevertResult:
        logger.warning(f"Revert of action {action_log_id} refused: {reason}")
        return RevertResult(success=False, reason=reason)


def format_revert_result(result: RevertResult) -> str:
    status = "✅" if result.success else "❌"
    return f"{status} {result.message} ({result.reason})"
