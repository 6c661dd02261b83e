"""Gallery model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from galleria.db.base import Base, utcnow

if TYPE_CHECKING:
    from galleria.db.models.profile import Profile


class Gallery(Base):
    """A photo gallery backed by one Google Drive folder."""

    __tablename__ = "galleries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)

    drive_folder_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, doc="Google Drive folder holding the photos"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    owner: Mapped[Profile] = relationship("Profile", back_populates="galleries")

    __table_args__ = (
        UniqueConstraint("user_id", "slug", name="uq_galleries_user_slug"),
        Index("ix_galleries_drive_folder_id", "drive_folder_id"),
    )
