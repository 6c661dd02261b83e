"""Business logic services for Galleria."""

from galleria.services.debounce import Debouncer
from galleria.services.gallery import GalleryNotFoundError, GalleryService
from galleria.services.google_auth import GoogleTokenProvider
from galleria.services.google_drive import (
    GoogleDriveClient,
    GoogleDriveError,
    RemoteDeregistrationError,
    RemoteRegistrationError,
)
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.media import MediaService
from galleria.services.notifications import ChangeNotificationReceiver, NotificationState
from galleria.services.profile import ProfileNotFoundError, ProfileService, UsernameTakenError
from galleria.services.tag_cache import (
    CacheSweeper,
    HttpPurgeBackend,
    InMemoryTagCache,
    InvalidationError,
    TagCacheBackend,
    TieredTagCache,
)
from galleria.services.watch_registry import WatchRegistry
from galleria.services.watch_renewer import RenewalSummary, WatchRenewer

__all__ = [
    "CacheInvalidationEngine",
    "CacheSweeper",
    "ChangeNotificationReceiver",
    "Debouncer",
    "GalleryNotFoundError",
    "GalleryService",
    "GoogleDriveClient",
    "GoogleDriveError",
    "GoogleTokenProvider",
    "HttpPurgeBackend",
    "InMemoryTagCache",
    "InvalidationError",
    "MediaService",
    "NotificationState",
    "ProfileNotFoundError",
    "ProfileService",
    "RemoteDeregistrationError",
    "RemoteRegistrationError",
    "RenewalSummary",
    "TagCacheBackend",
    "TieredTagCache",
    "UsernameTakenError",
    "WatchRegistry",
    "WatchRenewer",
]
