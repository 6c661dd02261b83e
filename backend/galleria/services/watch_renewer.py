"""Renewal sweep for Drive watch channels.

Drive channels expire after at most a week. The sweep re-registers every
channel expiring within the renewal window so notifications never lapse.
Each subscription is handled independently: expired credentials or a
deleted folder fail that item only, and the next scheduled run picks up
whatever is still expiring.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

from pydantic import BaseModel, Field

from galleria.core.config import settings
from galleria.core.logging import get_logger
from galleria.services.watch_registry import WatchRegistry

logger = get_logger(__name__)


class AccessTokenProvider(Protocol):
    async def get_access_token_for_user(self, user_id: str) -> str | None: ...


class RenewalFailure(BaseModel):
    """A subscription the sweep could not renew."""

    folder_id: str
    reason: str


class RenewalSummary(BaseModel):
    """Result of one renewal sweep."""

    renewed_count: int = 0
    failures: list[RenewalFailure] = Field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class WatchRenewer:
    """Re-registers watch channels nearing expiry."""

    def __init__(
        self,
        registry: WatchRegistry,
        tokens: AccessTokenProvider,
        window: timedelta | None = None,
    ):
        """Initialize the renewer.

        Args:
            registry: Watch registry to read from and register through.
            tokens: Resolves each owner's current Drive access token.
            window: Renew channels expiring within this window (defaults to settings).
        """
        self.registry = registry
        self.tokens = tokens
        self.window = window or timedelta(hours=settings.renewal_window_hours)

    async def renew_expiring(self, now: datetime | None = None) -> RenewalSummary:
        """Renew every subscription expiring within the window.

        Never raises; per-item errors are reported in the summary.
        """
        now = now or datetime.now(timezone.utc)
        summary = RenewalSummary()

        try:
            expiring = await self.registry.find_expiring_before(now + self.window)
        except Exception as e:
            logger.error("renewal_query_failed", error=str(e), exc_info=True)
            summary.failures.append(RenewalFailure(folder_id="*", reason=f"query failed: {e}"))
            return summary

        if not expiring:
            logger.info("renewal_sweep_nothing_to_renew")
            return summary

        # Snapshot plain values; a failed item may roll the session back
        items = [(s.user_id, s.folder_id, s.gallery_id, s.channel_id) for s in expiring]
        logger.info("renewal_sweep_started", count=len(items))

        for user_id, folder_id, gallery_id, channel_id in items:
            reason = await self._renew_one(user_id, folder_id, gallery_id)
            if reason is None:
                summary.renewed_count += 1
            else:
                logger.warning(
                    "watch_renewal_failed",
                    folder_id=folder_id,
                    channel_id=channel_id,
                    reason=reason,
                )
                summary.failures.append(RenewalFailure(folder_id=folder_id, reason=reason))

        logger.info(
            "renewal_sweep_completed",
            renewed=summary.renewed_count,
            failed=summary.failed_count,
        )
        return summary

    async def _renew_one(self, user_id: str, folder_id: str, gallery_id: str) -> str | None:
        """Renew one subscription.

        Returns:
            None on success, otherwise the failure reason.
        """
        try:
            access_token = await self.tokens.get_access_token_for_user(user_id)
            if not access_token:
                return "no valid access token for owner"

            subscription = await self.registry.register_watch(
                user_id, folder_id, gallery_id, access_token
            )
            if subscription is None:
                return "watch registration disabled"
        except Exception as e:
            return str(e) or type(e).__name__

        return None
