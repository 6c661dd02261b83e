"""API router that aggregates all routes."""

from fastapi import APIRouter

from galleria.api.routes import cron, health, media, webhooks

api_router = APIRouter(prefix="/api")

api_router.include_router(health.router)
api_router.include_router(webhooks.router)
api_router.include_router(cron.router)
api_router.include_router(media.router)
