"""Webhook endpoint for Google Drive change notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from galleria.api.dependencies import get_debouncer, get_drive_client, get_invalidation_engine
from galleria.core.logging import get_logger
from galleria.db import get_session_factory
from galleria.services.debounce import Debouncer
from galleria.services.google_drive import GoogleDriveClient
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.notifications import ChangeNotificationReceiver
from galleria.services.watch_registry import WatchRegistry

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookAck(BaseModel):
    """Acknowledgement returned to Drive."""

    ok: bool = True


@router.post("/drive", response_model=WebhookAck)
async def drive_webhook(
    x_goog_channel_id: str | None = Header(default=None),
    x_goog_resource_state: str | None = Header(default=None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    drive: GoogleDriveClient = Depends(get_drive_client),
    debouncer: Debouncer = Depends(get_debouncer),
    engine: CacheInvalidationEngine = Depends(get_invalidation_engine),
) -> WebhookAck:
    """Receive a Drive change notification.

    Always answers 200; processing errors, database failures included, are
    logged and never returned.
    """
    try:
        async with session_factory() as db:
            receiver = ChangeNotificationReceiver(WatchRegistry(db, drive), debouncer, engine)
            await receiver.handle(x_goog_channel_id, x_goog_resource_state)
    except Exception as e:
        logger.error(
            "drive_webhook_processing_failed",
            channel_id=x_goog_channel_id,
            resource_state=x_goog_resource_state,
            error=str(e),
            exc_info=True,
        )

    return WebhookAck(ok=True)
