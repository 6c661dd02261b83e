"""Proxied and cached gallery media."""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.api.dependencies import get_app_cache, get_drive_client, get_http_client
from galleria.core.logging import get_logger
from galleria.db import get_db
from galleria.db.models import Gallery
from galleria.services.google_auth import GoogleTokenProvider
from galleria.services.google_drive import FileInfo, GoogleDriveClient, GoogleDriveError
from galleria.services.media import COVER_CACHE_CONTROL, MediaService
from galleria.services.tag_cache import InMemoryTagCache

logger = get_logger(__name__)

router = APIRouter(tags=["media"])


class PhotoListResponse(BaseModel):
    """Photos in a gallery's Drive folder."""

    photos: list[FileInfo]


@router.get("/galleries/{gallery_id}/photos", response_model=PhotoListResponse)
async def list_gallery_photos(
    gallery_id: str,
    response: Response,
    db: AsyncSession = Depends(get_db),
    drive: GoogleDriveClient = Depends(get_drive_client),
    http: httpx.AsyncClient = Depends(get_http_client),
    cache: InMemoryTagCache = Depends(get_app_cache),
) -> PhotoListResponse:
    """List the photos of a gallery.

    Returns an empty list when the gallery has no folder, the owner has no
    usable Drive token, or Drive fails.
    """
    result = await db.execute(select(Gallery).where(Gallery.id == gallery_id))
    gallery = result.scalar_one_or_none()
    if gallery is None or not gallery.drive_folder_id:
        return PhotoListResponse(photos=[])

    access_token = await GoogleTokenProvider(db, http).get_access_token_for_user(gallery.user_id)
    if not access_token:
        return PhotoListResponse(photos=[])

    try:
        listing = await MediaService(drive, cache).list_gallery_photos(
            gallery.id, gallery.drive_folder_id, access_token
        )
    except GoogleDriveError as e:
        logger.warning(
            "gallery_photos_unavailable",
            gallery_id=gallery_id,
            status_code=e.status_code,
            error=str(e),
        )
        return PhotoListResponse(photos=[])

    response.headers["Cache-Tag"] = ",".join(listing.tags)
    response.headers["X-Cache"] = "HIT" if listing.cache_hit else "MISS"
    return PhotoListResponse(photos=listing.photos)


@router.get("/media/cover/{photo_id}")
async def get_cover(
    photo_id: str,
    w: int = Query(default=1000, ge=16, le=4000, description="Width in pixels"),
    drive: GoogleDriveClient = Depends(get_drive_client),
    cache: InMemoryTagCache = Depends(get_app_cache),
) -> Response:
    """Serve a resized cover image with long-lived edge caching."""
    try:
        cover = await MediaService(drive, cache).get_cover(photo_id, w)
    except GoogleDriveError as e:
        logger.warning("cover_unavailable", photo_id=photo_id, status_code=e.status_code)
        return JSONResponse(
            status_code=e.status_code or 502,
            content={"error": "Image unavailable in Drive"},
        )

    return Response(
        content=cover.image.content,
        media_type=cover.image.content_type,
        headers={
            "Cache-Control": COVER_CACHE_CONTROL,
            "Cache-Tag": ",".join(cover.tags),
            "X-Cache": "HIT" if cover.cache_hit else "MISS",
        },
    )
