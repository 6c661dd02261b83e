"""Profile model: the slice of a user account the cache core needs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from galleria.db.base import Base, utcnow

if TYPE_CHECKING:
    from galleria.db.models.gallery import Gallery
    from galleria.db.models.watch_subscription import WatchSubscription


class Profile(Base):
    """A photographer account.

    Authentication lives elsewhere; this table only carries the public
    username (used to scope profile cache tags) and the Google refresh
    token the token provider exchanges for Drive access tokens.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Fernet-encrypted (see galleria.core.security)
    google_refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    galleries: Mapped[list[Gallery]] = relationship(
        "Gallery", back_populates="owner", cascade="all, delete-orphan"
    )
    watch_subscriptions: Mapped[list[WatchSubscription]] = relationship(
        "WatchSubscription", back_populates="owner", cascade="all, delete-orphan"
    )
