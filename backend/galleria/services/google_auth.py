"""Drive access token provider.

Exchanges a user's stored Google refresh token for a short-lived access
token. Every failure mode resolves to ``None`` so callers (renewal sweep,
media routes) can skip the user instead of failing.
"""

from __future__ import annotations

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.core.config import settings
from galleria.core.logging import get_logger
from galleria.core.security import TokenDecryptionError, decrypt
from galleria.db.models import Profile

logger = get_logger(__name__)


class GoogleTokenProvider:
    """Resolves Drive access tokens for users."""

    def __init__(self, db: AsyncSession, http: httpx.AsyncClient):
        """Initialize the provider.

        Args:
            db: Async database session.
            http: Shared HTTP client.
        """
        self.db = db
        self.http = http

    async def get_access_token_for_user(self, user_id: str) -> str | None:
        """Get a valid Drive access token for a user.

        Args:
            user_id: Profile ID.

        Returns:
            Access token, or None if the user has no usable refresh token or
            Google refused the exchange.
        """
        if not settings.google_oauth_configured:
            logger.warning("google_oauth_not_configured", user_id=user_id)
            return None

        result = await self.db.execute(
            select(Profile.google_refresh_token_encrypted).where(Profile.id == user_id)
        )
        encrypted = result.scalar_one_or_none()
        if not encrypted:
            logger.warning("refresh_token_missing", user_id=user_id)
            return None

        try:
            refresh_token = decrypt(encrypted)
        except TokenDecryptionError:
            logger.error("refresh_token_undecryptable", user_id=user_id)
            return None

        try:
            response = await self.http.post(
                settings.google_oauth_token_url,
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            logger.error("access_token_request_failed", user_id=user_id, error=str(e))
            return None

        if not response.is_success:
            logger.error(
                "access_token_refresh_rejected",
                user_id=user_id,
                status_code=response.status_code,
                body=response.text[:200],
            )
            return None

        access_token = response.json().get("access_token")
        if not access_token:
            logger.error("access_token_missing_in_response", user_id=user_id)
            return None

        return access_token
