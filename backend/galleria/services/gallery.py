"""Gallery write paths.

Create, update and delete commit first and invalidate after; a watch is
registered whenever a gallery gets a Drive folder.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.core.logging import get_logger
from galleria.db.models import Gallery, Profile
from galleria.services.google_drive import RemoteRegistrationError
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.tag_cache import InvalidationError
from galleria.services.watch_registry import WatchRegistry
from galleria.services.watch_renewer import AccessTokenProvider

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "slug", "drive_folder_id"})


class GalleryNotFoundError(Exception):
    """Raised when a gallery does not exist or belongs to another user."""

    def __init__(self, gallery_id: str):
        super().__init__(f"Gallery {gallery_id} not found")
        self.gallery_id = gallery_id


class GalleryService:
    """Gallery CRUD with post-commit cache invalidation."""

    def __init__(
        self,
        db: AsyncSession,
        registry: WatchRegistry,
        engine: CacheInvalidationEngine,
        tokens: AccessTokenProvider,
    ):
        """Initialize the service.

        Args:
            db: Async database session.
            registry: Watch registry for folder watches.
            engine: Cache invalidation engine.
            tokens: Resolves the owner's Drive access token.
        """
        self.db = db
        self.registry = registry
        self.engine = engine
        self.tokens = tokens

    async def create_gallery(
        self,
        user_id: str,
        title: str,
        slug: str,
        drive_folder_id: str | None = None,
    ) -> Gallery:
        """Create a gallery and start watching its folder.

        Raises:
            RemoteRegistrationError: If the folder watch could not be
                registered. The gallery itself is already saved.
        """
        gallery = Gallery(
            user_id=user_id,
            title=title,
            slug=slug,
            drive_folder_id=drive_folder_id,
        )
        self.db.add(gallery)
        await self.db.commit()
        await self.db.refresh(gallery)

        logger.info("gallery_created", gallery_id=gallery.id, user_id=user_id)

        await self._invalidate(gallery.id, user_id, gallery.slug, gallery.drive_folder_id)

        if gallery.drive_folder_id:
            await self._register_watch(gallery)

        return gallery

    async def update_gallery(self, gallery_id: str, user_id: str, **changes: Any) -> Gallery:
        """Update a gallery's title, slug or folder.

        Both the old and new slug/folder are invalidated. A new folder gets
        a watch of its own.

        Raises:
            GalleryNotFoundError: If the gallery does not exist for this user.
            ValueError: If an unknown field is passed.
            RemoteRegistrationError: If the new folder could not be watched.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        gallery = await self._get_owned(gallery_id, user_id)
        old_slug = gallery.slug
        old_folder = gallery.drive_folder_id

        for key, value in changes.items():
            setattr(gallery, key, value)
        await self.db.commit()
        await self.db.refresh(gallery)

        logger.info("gallery_updated", gallery_id=gallery_id, fields=sorted(changes))

        await self._invalidate(gallery.id, user_id, gallery.slug, gallery.drive_folder_id)
        if old_slug != gallery.slug or old_folder != gallery.drive_folder_id:
            await self._invalidate(gallery.id, user_id, old_slug, old_folder)

        if gallery.drive_folder_id and gallery.drive_folder_id != old_folder:
            await self._register_watch(gallery)

        return gallery

    async def delete_gallery(self, gallery_id: str, user_id: str) -> None:
        """Delete a gallery.

        Its watch row goes with it through the ``galleries`` foreign key
        cascade. The remote channel is left to expire on its own; its id no
        longer resolves, so notifications for it are ignored.

        Raises:
            GalleryNotFoundError: If the gallery does not exist for this user.
        """
        gallery = await self._get_owned(gallery_id, user_id)
        slug = gallery.slug
        folder_id = gallery.drive_folder_id

        await self.db.delete(gallery)
        await self.db.commit()

        logger.info("gallery_deleted", gallery_id=gallery_id, user_id=user_id)

        await self._invalidate(gallery_id, user_id, slug, folder_id)

    async def _get_owned(self, gallery_id: str, user_id: str) -> Gallery:
        result = await self.db.execute(
            select(Gallery).where(Gallery.id == gallery_id, Gallery.user_id == user_id)
        )
        gallery = result.scalar_one_or_none()
        if gallery is None:
            raise GalleryNotFoundError(gallery_id)
        return gallery

    async def _get_username(self, user_id: str) -> str | None:
        result = await self.db.execute(select(Profile.username).where(Profile.id == user_id))
        return result.scalar_one_or_none()

    async def _invalidate(
        self,
        gallery_id: str,
        user_id: str,
        slug: str | None,
        folder_id: str | None,
    ) -> None:
        # The write is committed; a cache tier being down only delays freshness
        username = await self._get_username(user_id)
        try:
            await self.engine.invalidate_gallery_write(
                gallery_id,
                user_id,
                slug=slug,
                drive_folder_id=folder_id,
                username=username,
            )
        except InvalidationError as e:
            logger.warning(
                "gallery_invalidation_incomplete",
                gallery_id=gallery_id,
                failed_tags=e.tags,
                error=str(e),
            )

    async def _register_watch(self, gallery: Gallery) -> None:
        folder_id = gallery.drive_folder_id
        access_token = await self.tokens.get_access_token_for_user(gallery.user_id)
        if not access_token:
            raise RemoteRegistrationError(
                "No Google Drive access token available; reconnect Google Drive",
                folder_id=folder_id,
            )
        await self.registry.register_watch(gallery.user_id, folder_id, gallery.id, access_token)
