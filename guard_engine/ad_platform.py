"""
Ad-platform client interface used to stop ads.

Supports:
- Dry-run mode (DryRunAdPlatform): simulates stops, no network calls
- Live mode: any AdPlatformClient subclass wrapping the real HTTP API
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .logging_config import setup_logging

logger = setup_logging(__name__)


class AdPlatformError(Exception):
    """Raised by a client when the platform rejects or fails a request."""


class AdPlatformClient(ABC):
    """
    Narrow ad-platform surface the rule engine needs.

    stop_ad raises on failure; the caller records the error message.
    """

    @abstractmethod
    def get_valid_access_token(self, user_id: str) -> str:
        """Return a non-expired access token, refreshing it if needed."""

    @abstractmethod
    def stop_ad(self, token: str, ad_id: str, account_id: str) -> None:
        """Stop (pause) one ad."""


@dataclass
class StopRecord:
    """One simulated stop."""
    ad_id: str
    account_id: str
    stopped_at: datetime


class DryRunAdPlatform(AdPlatformClient):
    """
    Simulated platform: every stop succeeds and is remembered.

    Ads listed in failing_ad_ids raise AdPlatformError instead.
    """

    def __init__(self, failing_ad_ids: Optional[Iterable[str]] = None):
        self.failing_ad_ids = set(failing_ad_ids or [])
        self.stopped: List[StopRecord] = []
        logger.info("DryRunAdPlatform initialized: mode=DRY-RUN")

    def get_valid_access_token(self, user_id: str) -> str:
        return f"dry-run-token-{user_id}"

    def stop_ad(self, token: str, ad_id: str, account_id: str) -> None:
        if ad_id in self.failing_ad_ids:
            logger.warning(f"[DRY-RUN] Stop rejected for ad {ad_id} (account {account_id})")
            raise AdPlatformError(f"Ad {ad_id} could not be stopped")

        self.stopped.append(StopRecord(ad_id=ad_id, account_id=account_id, stopped_at=datetime.now()))
        logger.info(f"[DRY-RUN] Would stop ad {ad_id} in account {account_id}")

    def is_stopped(self, ad_id: str) -> bool:
        return any(s.ad_id == ad_id for s in self.stopped)
