"""Scheduled job triggers."""

from __future__ import annotations

import secrets

import httpx
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.api.dependencies import get_drive_client, get_http_client
from galleria.core.config import settings
from galleria.core.logging import get_logger
from galleria.db import get_db
from galleria.services.google_auth import GoogleTokenProvider
from galleria.services.google_drive import GoogleDriveClient
from galleria.services.watch_registry import WatchRegistry
from galleria.services.watch_renewer import RenewalFailure, WatchRenewer

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


class RenewalResponse(BaseModel):
    """Outcome of a renewal sweep."""

    renewed: int
    failed: int
    failures: list[RenewalFailure]


def _authorized(authorization: str | None) -> bool:
    if not settings.cron_secret or not authorization:
        return False
    return secrets.compare_digest(authorization, f"Bearer {settings.cron_secret}")


@router.get(
    "/renew-watches",
    response_model=RenewalResponse,
    responses={401: {"description": "Missing or wrong cron secret"}},
)
async def renew_watches(
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    drive: GoogleDriveClient = Depends(get_drive_client),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> RenewalResponse | JSONResponse:
    """Renew Drive watch channels expiring soon.

    Called by an external scheduler with ``Authorization: Bearer <cron_secret>``.
    """
    if not _authorized(authorization):
        logger.warning("cron_unauthorized", job="renew_watches")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    renewer = WatchRenewer(WatchRegistry(db, drive), GoogleTokenProvider(db, http))
    summary = await renewer.renew_expiring()

    return RenewalResponse(
        renewed=summary.renewed_count,
        failed=summary.failed_count,
        failures=summary.failures,
    )
