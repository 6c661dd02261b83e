"""Cached read paths for gallery media.

Photo listings and cover derivatives are expensive remote fetches, so they
are stored in the application tag cache under the same tags the
invalidation engine evicts.
"""

from __future__ import annotations

from pydantic import BaseModel

from galleria.core.config import settings
from galleria.core.logging import get_logger
from galleria.services.google_drive import FileInfo, GoogleDriveClient, ThumbnailImage
from galleria.services.invalidation import cover_tag, drive_photos_tag, gallery_photos_tag
from galleria.services.tag_cache import InMemoryTagCache

logger = get_logger(__name__)

# Edge caching for proxied covers: one day fresh, half a day stale-while-revalidate
COVER_CACHE_CONTROL = "public, s-maxage=86400, stale-while-revalidate=43200"


class CoverResult(BaseModel):
    """A cover image and where it was served from."""

    image: ThumbnailImage
    cache_hit: bool
    tags: list[str]


class PhotoListResult(BaseModel):
    """A gallery's photos and the tags they are cached under."""

    photos: list[FileInfo]
    cache_hit: bool
    tags: list[str]


class MediaService:
    """Serves photo listings and cover images through the app cache."""

    def __init__(self, drive: GoogleDriveClient, cache: InMemoryTagCache):
        self.drive = drive
        self.cache = cache

    async def list_gallery_photos(
        self, gallery_id: str, folder_id: str, access_token: str
    ) -> PhotoListResult:
        """List a gallery's photos, from cache when possible."""
        key = f"photos:{gallery_id}:{folder_id}"
        tags = [drive_photos_tag(folder_id), gallery_photos_tag(gallery_id)]

        cached = await self.cache.get(key)
        if cached is not None:
            return PhotoListResult(photos=cached, cache_hit=True, tags=tags)

        photos = await self.drive.list_folder_images(access_token, folder_id)
        await self.cache.set(key, photos, tags=tags, ttl=settings.photo_list_cache_ttl)
        logger.info(
            "gallery_photos_fetched",
            gallery_id=gallery_id,
            folder_id=folder_id,
            photo_count=len(photos),
        )
        return PhotoListResult(photos=photos, cache_hit=False, tags=tags)

    async def get_cover(self, photo_id: str, width: int) -> CoverResult:
        """Get a resized cover image, from cache when possible.

        Raises:
            GoogleDriveError: With the upstream status when the image is unavailable.
        """
        key = f"cover:{photo_id}:w{width}"
        tags = [cover_tag(photo_id)]

        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("cover_cache_hit", photo_id=photo_id, size_kb=round(len(cached.content) / 1024, 1))
            return CoverResult(image=cached, cache_hit=True, tags=tags)

        image = await self.drive.fetch_thumbnail(photo_id, width)
        await self.cache.set(key, image, tags=tags, ttl=settings.media_cache_ttl)
        logger.info("cover_fetched", photo_id=photo_id, width=width, size_kb=round(len(image.content) / 1024, 1))
        return CoverResult(image=image, cache_hit=False, tags=tags)
