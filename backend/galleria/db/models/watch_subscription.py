"""WatchSubscription model for Google Drive change notification channels."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from galleria.db.base import Base, ensure_utc, utcnow

if TYPE_CHECKING:
    from galleria.db.models.profile import Profile


class WatchSubscription(Base):
    """An active Drive watch channel on a gallery's folder.

    One row per watched folder per user. Re-registering a folder replaces
    the row wholesale (upsert on ``(user_id, folder_id)``), so a superseded
    channel id simply stops resolving. Two users may watch the same folder
    under separate channels.
    """

    __tablename__ = "drive_watch_channels"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    folder_id: Mapped[str] = mapped_column(String(128), nullable=False)
    gallery_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False
    )

    # Generated by us at registration time
    channel_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    # Assigned by Drive; needed to stop the channel
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    owner: Mapped[Profile] = relationship("Profile", back_populates="watch_subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "folder_id", name="uq_drive_watch_channels_user_folder"),
        Index("ix_drive_watch_channels_folder_id", "folder_id"),
        Index("ix_drive_watch_channels_expires_at", "expires_at"),
    )

    @property
    def is_expired(self) -> bool:
        """Check if Drive has stopped delivering for this channel."""
        return utcnow() >= ensure_utc(self.expires_at)

    def needs_renewal(self, window: timedelta = timedelta(hours=24)) -> bool:
        """Check if the channel expires within the renewal window."""
        return utcnow() >= ensure_utc(self.expires_at) - window

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"WatchSubscription(folder_id={self.folder_id!r}, "
            f"channel_id={self.channel_id!r})"
        )
