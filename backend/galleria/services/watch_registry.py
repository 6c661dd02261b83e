"""Watch registry: durable record of Drive watch channels.

Tracks which folders are watched, by whom, under which channel and until
when. The storage contract is four operations (lookup by user and folder,
lookup by channel, range by expiry, upsert by user and folder), all
expressed through SQLAlchemy so SQLite and PostgreSQL behave the same.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.core.config import settings
from galleria.core.logging import get_logger
from galleria.db.models import WatchSubscription
from galleria.services.google_drive import (
    GoogleDriveClient,
    RemoteDeregistrationError,
)

logger = get_logger(__name__)


def new_channel_id(user_id: str, folder_id: str) -> str:
    """Generate a globally unique channel id for a folder watch."""
    return f"gallery-{user_id}-{folder_id}-{uuid.uuid4().hex}"


class WatchRegistry:
    """Registers, replaces and looks up Drive watch channels."""

    def __init__(
        self,
        db: AsyncSession,
        drive: GoogleDriveClient,
        *,
        webhook_url: str | None = None,
        watch_ttl: timedelta | None = None,
    ):
        """Initialize the registry.

        Args:
            db: Async database session.
            drive: Drive client for the watch/stop calls.
            webhook_url: Callback address (defaults to settings at call time).
            watch_ttl: Requested channel lifetime (defaults to settings).
        """
        self.db = db
        self.drive = drive
        self.webhook_url = webhook_url
        self.watch_ttl = watch_ttl or timedelta(days=settings.watch_ttl_days)

    async def register_watch(
        self,
        user_id: str,
        folder_id: str,
        gallery_id: str,
        access_token: str,
    ) -> WatchSubscription | None:
        """Open a channel on a folder, replacing any previous one.

        The previous channel for ``(user_id, folder_id)`` is stopped on a
        best-effort basis first; a dangling channel is harmless and expires
        on its own.

        Args:
            user_id: Owning user.
            folder_id: Drive folder to watch.
            gallery_id: Gallery the folder backs.
            access_token: Owner's Drive access token.

        Returns:
            The stored subscription, or None when registration is disabled
            because Drive cannot reach this instance.

        Raises:
            RemoteRegistrationError: If Drive rejects the registration.
        """
        if not settings.watch_registration_enabled:
            logger.info(
                "watch_registration_skipped",
                folder_id=folder_id,
                reason="no public https app_url configured",
            )
            return None

        existing = await self.find_by_folder(user_id, folder_id)
        if existing is not None:
            logger.info(
                "watch_replacing_previous",
                folder_id=folder_id,
                previous_channel_id=existing.channel_id,
            )
            await self.deregister_watch(access_token, existing.channel_id, existing.resource_id)

        channel_id = new_channel_id(user_id, folder_id)
        expiration = datetime.now(timezone.utc) + self.watch_ttl

        channel = await self.drive.watch_folder(
            access_token,
            folder_id,
            channel_id=channel_id,
            address=self.webhook_url or settings.webhook_url,
            expiration=expiration,
        )

        subscription = await self._upsert(
            user_id=user_id,
            folder_id=folder_id,
            gallery_id=gallery_id,
            channel_id=channel_id,
            resource_id=channel.resource_id,
            expires_at=channel.expires_at,
        )

        logger.info(
            "watch_registered",
            channel_id=channel_id,
            folder_id=folder_id,
            gallery_id=gallery_id,
            expires_at=channel.expires_at.isoformat(),
        )
        return subscription

    async def deregister_watch(self, access_token: str, channel_id: str, resource_id: str) -> None:
        """Stop a channel. Never raises; failures are logged and absorbed."""
        try:
            await self.drive.stop_channel(access_token, channel_id, resource_id)
            logger.info("watch_stopped", channel_id=channel_id)
        except RemoteDeregistrationError as e:
            logger.warning("watch_stop_failed", channel_id=channel_id, error=str(e))
        except Exception as e:
            logger.error("watch_stop_unexpected_error", channel_id=channel_id, error=str(e))

    async def find_by_channel_id(
        self, channel_id: str, now: datetime | None = None
    ) -> WatchSubscription | None:
        """Point lookup used to map an inbound notification to its folder.

        Channels past their expiry are dead on Drive's side and never match.
        """
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(WatchSubscription).where(
                WatchSubscription.channel_id == channel_id,
                WatchSubscription.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def find_by_folder(self, user_id: str, folder_id: str) -> WatchSubscription | None:
        """Point lookup by the upsert key."""
        result = await self.db.execute(
            select(WatchSubscription).where(
                WatchSubscription.user_id == user_id,
                WatchSubscription.folder_id == folder_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_expiring_before(self, timestamp: datetime) -> list[WatchSubscription]:
        """Get subscriptions whose channel expires before ``timestamp``, soonest first."""
        result = await self.db.execute(
            select(WatchSubscription)
            .where(WatchSubscription.expires_at < timestamp)
            .order_by(WatchSubscription.expires_at.asc())
        )
        return list(result.scalars().all())

    async def _upsert(self, **values: object) -> WatchSubscription:
        """Insert or replace the row for a user's folder in one statement."""
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

        values["id"] = str(uuid.uuid4())
        values["created_at"] = datetime.now(timezone.utc)
        stmt = insert(WatchSubscription).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[WatchSubscription.user_id, WatchSubscription.folder_id],
            set_={
                key: stmt.excluded[key]
                for key in (
                    "gallery_id",
                    "channel_id",
                    "resource_id",
                    "expires_at",
                    "created_at",
                )
            },
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("watch_upsert_failed", folder_id=values["folder_id"], exc_info=True)
            raise

        result = await self.db.execute(
            select(WatchSubscription)
            .where(
                WatchSubscription.user_id == values["user_id"],
                WatchSubscription.folder_id == values["folder_id"],
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
