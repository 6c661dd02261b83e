"""Profile write paths.

Like gallery writes, profile changes commit first and invalidate after. A
username change moves every public URL of the profile, so it evicts the
galleries too; a new Drive connection only touches the profile itself.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from galleria.core.logging import get_logger
from galleria.core.security import encrypt
from galleria.db.models import Gallery, Profile
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.tag_cache import InvalidationError

logger = get_logger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when a profile does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"Profile {user_id} not found")
        self.user_id = user_id


class UsernameTakenError(Exception):
    """Raised when another profile already uses a username."""

    def __init__(self, username: str):
        super().__init__(f"Username {username!r} is already taken")
        self.username = username


class ProfileService:
    """Profile updates with post-commit cache invalidation."""

    def __init__(self, db: AsyncSession, engine: CacheInvalidationEngine):
        self.db = db
        self.engine = engine

    async def change_username(self, user_id: str, username: str) -> Profile:
        """Rename a profile.

        Both the old and the new username are invalidated together with
        every gallery the profile owns.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
            UsernameTakenError: If the username belongs to another profile.
            ValueError: If the username is blank.
        """
        username = username.strip()
        if not username:
            raise ValueError("Username cannot be blank")

        profile = await self._get(user_id)
        old_username = profile.username
        if old_username == username:
            return profile

        profile.username = username
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise UsernameTakenError(username) from e
        await self.db.refresh(profile)

        logger.info("username_changed", user_id=user_id, old_username=old_username, username=username)

        galleries = await self._galleries(user_id)
        for name in (old_username, username):
            try:
                await self.engine.invalidate_profile_complete(name, user_id, galleries)
            except InvalidationError as e:
                logger.warning(
                    "profile_invalidation_incomplete",
                    user_id=user_id,
                    failed_tags=e.tags,
                    error=str(e),
                )

        return profile

    async def set_drive_refresh_token(self, user_id: str, refresh_token: str | None) -> Profile:
        """Store (or clear, with ``None``) the user's Google refresh token.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
        """
        profile = await self._get(user_id)
        profile.google_refresh_token_encrypted = encrypt(refresh_token) if refresh_token else None
        await self.db.commit()
        await self.db.refresh(profile)

        logger.info("drive_connection_updated", user_id=user_id, connected=bool(refresh_token))

        try:
            await self.engine.invalidate_profile(profile.username, user_id)
        except InvalidationError as e:
            logger.warning(
                "profile_invalidation_incomplete",
                user_id=user_id,
                failed_tags=e.tags,
                error=str(e),
            )

        return profile

    async def _get(self, user_id: str) -> Profile:
        result = await self.db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one_or_none()
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile

    async def _galleries(self, user_id: str) -> list[Gallery]:
        result = await self.db.execute(
            select(Gallery).where(Gallery.user_id == user_id).order_by(Gallery.created_at)
        )
        return list(result.scalars().all())
