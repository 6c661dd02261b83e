"""Cache invalidation engine.

Single chokepoint for evicting tagged derived content. The Drive webhook
path calls ``invalidate_folder``; gallery CRUD calls the broader
``invalidate_gallery_write`` after its commit, and profile changes call
``invalidate_profile`` or ``invalidate_profile_complete``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from galleria.core.logging import get_logger
from galleria.services.tag_cache import InvalidationError, TagCacheBackend

if TYPE_CHECKING:
    from galleria.db.models import Gallery

logger = get_logger(__name__)

DASHBOARD_PATH = "/dashboard"


def drive_photos_tag(folder_id: str) -> str:
    return f"drive-photos:{folder_id}"


def gallery_photos_tag(gallery_id: str) -> str:
    return f"gallery-photos:{gallery_id}"


def gallery_tags_tag(gallery_id: str) -> str:
    return f"gallery-tags:{gallery_id}"


def gallery_slug_tag(slug: str) -> str:
    return f"gallery:{slug}"


def cover_tag(photo_id: str) -> str:
    return f"cover:{photo_id}"


def user_galleries_tag(user_id: str) -> str:
    return f"user-galleries:{user_id}"


def profile_tag(username: str) -> str:
    return f"profile:{username}"


def profile_galleries_tag(username: str) -> str:
    return f"profile-galleries:{username}"


def profile_private_tag(user_id: str) -> str:
    return f"profile-private:{user_id}"


def path_tag(path: str) -> str:
    """Tag for a statically rendered path."""
    return f"path:{path}"


def normalize_username(username: str) -> str:
    return username.strip().lower()


class CacheInvalidationEngine:
    """Evicts the minimal set of tags whose underlying data changed."""

    def __init__(self, backend: TagCacheBackend):
        """Initialize the engine.

        Args:
            backend: Cache tier (usually a ``TieredTagCache``) to evict from.
        """
        self.backend = backend

    async def invalidate_folder(self, folder_id: str, gallery_id: str) -> list[str]:
        """Evict a folder's raw listing and the gallery listing built from it.

        Idempotent: repeated calls leave the same tags absent.

        Returns:
            Tags evicted.
        """
        return await self._invalidate(
            [
                drive_photos_tag(folder_id),
                gallery_photos_tag(gallery_id),
                gallery_tags_tag(gallery_id),
            ],
            reason="folder_changed",
        )

    async def invalidate_cover(self, photo_id: str) -> list[str]:
        """Evict a single cached cover derivative."""
        return await self._invalidate([cover_tag(photo_id)], reason="cover_changed")

    async def invalidate_gallery_write(
        self,
        gallery_id: str,
        user_id: str,
        slug: str | None = None,
        drive_folder_id: str | None = None,
        username: str | None = None,
    ) -> list[str]:
        """Evict everything a structural gallery change can affect.

        Covers the gallery itself, its folder, the owner's gallery list,
        the public profile and the dashboard path. Strictly broader than
        ``invalidate_folder``.
        """
        tags: list[str] = []
        if slug:
            tags.append(gallery_slug_tag(slug))
        if drive_folder_id:
            tags.append(drive_photos_tag(drive_folder_id))
        tags += [
            gallery_photos_tag(gallery_id),
            gallery_tags_tag(gallery_id),
            user_galleries_tag(user_id),
        ]
        if username:
            clean = normalize_username(username)
            tags += [profile_tag(clean), profile_galleries_tag(clean), path_tag(f"/{clean}")]
            if slug:
                tags.append(path_tag(f"/{clean}/{slug}"))
        tags.append(path_tag(DASHBOARD_PATH))

        return await self._invalidate(tags, reason="gallery_write")

    async def invalidate_profile(self, username: str, user_id: str) -> list[str]:
        """Evict public and private profile data and the owner's listings."""
        clean = normalize_username(username)
        return await self._invalidate(
            [
                profile_tag(clean),
                profile_private_tag(user_id),
                profile_galleries_tag(clean),
                user_galleries_tag(user_id),
                path_tag(f"/{clean}"),
                path_tag(DASHBOARD_PATH),
            ],
            reason="profile_changed",
        )

    async def invalidate_profile_complete(
        self,
        username: str,
        user_id: str,
        galleries: Sequence[Gallery],
    ) -> list[str]:
        """Evict the profile and everything cached for each of its galleries.

        Used when a change reaches every gallery at once (username change,
        Drive reconnect).
        """
        clean = normalize_username(username)
        tags = [
            profile_tag(clean),
            profile_private_tag(user_id),
            profile_galleries_tag(clean),
            user_galleries_tag(user_id),
            path_tag(f"/{clean}"),
            path_tag(DASHBOARD_PATH),
        ]
        for gallery in galleries:
            tags += [
                gallery_slug_tag(gallery.slug),
                gallery_photos_tag(gallery.id),
                gallery_tags_tag(gallery.id),
                path_tag(f"/{clean}/{gallery.slug}"),
            ]
            if gallery.drive_folder_id:
                tags.append(drive_photos_tag(gallery.drive_folder_id))

        return await self._invalidate(tags, reason="profile_changed")

    async def _invalidate(self, tags: list[str], reason: str) -> list[str]:
        """Evict tags one by one, attempting all before reporting failures.

        Raises:
            InvalidationError: Naming every tag that could not be evicted.
        """
        unique = list(dict.fromkeys(tags))
        failed: list[str] = []

        for tag in unique:
            try:
                await self.backend.invalidate(tag)
            except InvalidationError as e:
                logger.warning("cache_tag_invalidation_failed", tag=tag, error=str(e))
                failed.append(tag)

        if failed:
            raise InvalidationError(
                f"Failed to invalidate {len(failed)} of {len(unique)} tag(s)", tags=failed
            )

        logger.info("cache_tags_invalidated", reason=reason, tags=unique)
        return unique
