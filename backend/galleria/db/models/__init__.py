"""Database models for Galleria."""

from galleria.db.models.gallery import Gallery
from galleria.db.models.profile import Profile
from galleria.db.models.watch_subscription import WatchSubscription

__all__ = [
    "Gallery",
    "Profile",
    "WatchSubscription",
]
