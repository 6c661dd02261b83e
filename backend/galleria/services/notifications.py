"""Drive change notification receiver.

Each inbound webhook walks a small state machine::

    RECEIVED -> FILTERED -> RESOLVED -> DEBOUNCED -> INVALIDATED
                   |            |
                   +-> IGNORED  +-> IGNORED

The request is acknowledged as soon as the notification is filtered,
resolved or scheduled; the invalidation itself runs later on the
debouncer, outside the request/response cycle.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from galleria.core.logging import get_logger
from galleria.services.debounce import Debouncer
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.watch_registry import WatchRegistry

logger = get_logger(__name__)

# Resource states that mean folder content changed. "sync" is the one-off
# handshake Drive sends when a channel is opened.
MUTATION_STATES = frozenset({"add", "remove", "update", "change"})


class NotificationState(str, Enum):
    """Where a notification stopped in the receiver."""

    RECEIVED = "received"
    FILTERED = "filtered"
    RESOLVED = "resolved"
    DEBOUNCED = "debounced"
    INVALIDATED = "invalidated"
    IGNORED = "ignored"


class NotificationOutcome(BaseModel):
    """Result of handling one inbound notification."""

    state: NotificationState
    reason: str | None = None
    folder_id: str | None = None
    gallery_id: str | None = None


class ChangeNotificationReceiver:
    """Filters, resolves and debounces Drive change notifications."""

    def __init__(
        self,
        registry: WatchRegistry,
        debouncer: Debouncer,
        engine: CacheInvalidationEngine,
    ):
        self.registry = registry
        self.debouncer = debouncer
        self.engine = engine

    async def handle(self, channel_id: str | None, resource_state: str | None) -> NotificationOutcome:
        """Process one notification up to scheduling.

        Args:
            channel_id: Value of ``X-Goog-Channel-ID``.
            resource_state: Value of ``X-Goog-Resource-State``.

        Returns:
            Outcome: ``IGNORED`` or ``DEBOUNCED``.
        """
        if not channel_id:
            return self._ignore("missing channel id", channel_id, resource_state)
        if resource_state == "sync":
            return self._ignore("sync handshake", channel_id, resource_state)
        if resource_state not in MUTATION_STATES:
            return self._ignore("unhandled resource state", channel_id, resource_state)

        subscription = await self.registry.find_by_channel_id(channel_id)
        if subscription is None:
            # Stale or superseded channel; a renewal may have just replaced it
            return self._ignore("unknown channel", channel_id, resource_state)

        folder_id = subscription.folder_id
        gallery_id = subscription.gallery_id
        # Two users may watch one folder; each watch debounces on its own
        key = f"{subscription.user_id}:{folder_id}"

        async def _invalidate() -> None:
            await self.engine.invalidate_folder(folder_id, gallery_id)
            logger.info(
                "drive_change_invalidated",
                folder_id=folder_id,
                gallery_id=gallery_id,
                state=NotificationState.INVALIDATED.value,
            )

        self.debouncer.schedule(key, _invalidate)

        logger.info(
            "drive_change_debounced",
            channel_id=channel_id,
            resource_state=resource_state,
            folder_id=folder_id,
            gallery_id=gallery_id,
            delay_seconds=self.debouncer.delay,
        )
        return NotificationOutcome(
            state=NotificationState.DEBOUNCED,
            folder_id=folder_id,
            gallery_id=gallery_id,
        )

    @staticmethod
    def _ignore(reason: str, channel_id: str | None, resource_state: str | None) -> NotificationOutcome:
        logger.debug(
            "drive_change_ignored",
            reason=reason,
            channel_id=channel_id,
            resource_state=resource_state,
        )
        return NotificationOutcome(state=NotificationState.IGNORED, reason=reason)
