"""Google Drive REST client for watch channels and gallery media.

Provides:
- Watch channel registration (``files/{id}/watch``) and teardown (``channels/stop``)
- Image listing for a gallery folder with pagination
- Thumbnail fetching for cover derivatives
- Rate limiting with exponential backoff on read paths

All calls go through one shared ``httpx.AsyncClient`` owned by the
application lifespan.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

import httpx
from pydantic import BaseModel

from galleria.core.config import settings
from galleria.core.logging import get_logger

T = TypeVar("T")

# Rate limiting configuration
RATE_LIMIT_MAX_RETRIES = 3
RATE_LIMIT_BASE_DELAY = 1.0  # seconds
RATE_LIMIT_MAX_DELAY = 30.0
RATE_LIMIT_JITTER = 0.3  # 30% jitter

IMAGE_LIST_FIELDS = "nextPageToken, files(id, name, mimeType, thumbnailLink, webViewLink, modifiedTime)"

logger = get_logger(__name__)


class GoogleDriveError(Exception):
    """Base exception for Google Drive errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GoogleAuthError(GoogleDriveError):
    """Raised when the access token is missing, invalid or expired."""

    pass


class GoogleAccessDeniedError(GoogleDriveError):
    """Raised when access is denied to a resource."""

    pass


class GoogleNotFoundError(GoogleDriveError):
    """Raised when a file or folder is not found."""

    pass


class GoogleRateLimitError(GoogleDriveError):
    """Raised when rate limited by Google API."""

    def __init__(
        self,
        message: str = "Google API rate limit exceeded",
        retry_after: int | None = None,
    ):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after  # Seconds to wait before retry


class RemoteRegistrationError(GoogleDriveError):
    """Raised when Drive rejects a watch registration.

    Propagated to interactive callers (gallery setup) so the user can be
    told the folder is not being watched.
    """

    def __init__(self, message: str, folder_id: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        self.folder_id = folder_id


class RemoteDeregistrationError(GoogleDriveError):
    """Raised when Drive fails to stop a channel. Never leaves the registry."""

    pass


def raise_for_drive_status(response: httpx.Response, operation: str) -> None:
    """Map a non-2xx Drive response to the matching exception.

    Args:
        response: Response from the Drive API.
        operation: Description of the call for error messages.

    Raises:
        GoogleDriveError: Or the most specific subclass for the status.
    """
    if response.is_success:
        return

    message = _error_message(response)
    status = response.status_code
    detail = f"{operation} failed ({status}): {message}"

    if status == 401:
        raise GoogleAuthError(detail, status_code=status)
    if status == 403:
        if "rate" in message.lower() or "quota" in message.lower():
            raise GoogleRateLimitError(detail)
        raise GoogleAccessDeniedError(detail, status_code=status)
    if status == 404:
        raise GoogleNotFoundError(detail, status_code=status)
    if status == 429:
        retry_after = response.headers.get("retry-after")
        raise GoogleRateLimitError(
            detail,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    raise GoogleDriveError(detail, status_code=status)


def _error_message(response: httpx.Response) -> str:
    """Extract Google's error message from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    return response.reason_phrase


async def with_rate_limit_retry(
    func: Callable[[], Awaitable[T]],
    max_retries: int = RATE_LIMIT_MAX_RETRIES,
    operation: str = "API call",
) -> T:
    """Await a Drive call with automatic retry on rate limiting.

    Implements exponential backoff with jitter. Only used on read paths;
    watch registration surfaces rate limits to its caller instead.

    Args:
        func: Zero-argument coroutine factory performing the call.
        max_retries: Maximum number of retry attempts.
        operation: Description of the operation for logging.

    Returns:
        Result of the call.

    Raises:
        GoogleRateLimitError: If max retries exceeded.
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except GoogleRateLimitError as e:
            if attempt >= max_retries:
                logger.error(
                    "rate_limit_max_retries",
                    operation=operation,
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise

            delay = e.retry_after or min(
                RATE_LIMIT_BASE_DELAY * (2 ** attempt),
                RATE_LIMIT_MAX_DELAY,
            )
            delay += delay * RATE_LIMIT_JITTER * (2 * random.random() - 1)

            logger.warning(
                "rate_limit_retry",
                operation=operation,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_seconds=round(delay, 1),
            )
            await asyncio.sleep(delay)

    raise GoogleRateLimitError(f"Rate limit handling failed for {operation}")


class WatchChannelInfo(BaseModel):
    """A channel Drive accepted for a watched folder."""

    channel_id: str
    resource_id: str
    expires_at: datetime
    resource_uri: str | None = None


class FileInfo(BaseModel):
    """Information about an image file in a Drive folder."""

    id: str
    name: str
    mime_type: str
    thumbnail_url: str | None = None
    web_view_url: str | None = None
    modified_time: datetime | None = None


class ThumbnailImage(BaseModel):
    """A fetched cover derivative."""

    content: bytes
    content_type: str


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to the epoch milliseconds Drive expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int | str) -> datetime:
    """Convert Drive's epoch-millisecond strings back to datetimes."""
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class GoogleDriveClient:
    """Thin async client for the Drive v3 REST endpoints Galleria uses."""

    def __init__(self, http: httpx.AsyncClient, api_base: str | None = None):
        """Initialize the client.

        Args:
            http: Shared HTTP client.
            api_base: Drive API base URL (defaults to settings).
        """
        self.http = http
        self.api_base = (api_base or settings.drive_api_base).rstrip("/")

    @staticmethod
    def _auth(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    async def watch_folder(
        self,
        access_token: str,
        folder_id: str,
        channel_id: str,
        address: str,
        expiration: datetime,
    ) -> WatchChannelInfo:
        """Open a web_hook channel on a folder.

        Args:
            access_token: Owner's Drive access token.
            folder_id: Folder to watch.
            channel_id: Our channel identifier (echoed back in webhooks).
            address: HTTPS callback address.
            expiration: Requested channel expiry.

        Returns:
            The accepted channel, with the expiry Drive actually granted.

        Raises:
            RemoteRegistrationError: If Drive rejects the request or is unreachable.
        """
        try:
            response = await self.http.post(
                f"{self.api_base}/files/{folder_id}/watch",
                headers=self._auth(access_token),
                json={
                    "id": channel_id,
                    "type": "web_hook",
                    "address": address,
                    "expiration": to_epoch_ms(expiration),
                },
            )
        except httpx.HTTPError as e:
            raise RemoteRegistrationError(
                f"Watch registration request failed: {e}", folder_id=folder_id
            ) from e

        try:
            raise_for_drive_status(response, f"Watch on folder {folder_id}")
        except GoogleDriveError as e:
            raise RemoteRegistrationError(
                str(e), folder_id=folder_id, status_code=e.status_code
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteRegistrationError(
                "Drive returned a non-JSON watch response",
                folder_id=folder_id,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise RemoteRegistrationError(
                "Drive returned an unexpected watch response",
                folder_id=folder_id,
                status_code=response.status_code,
            )

        resource_id = data.get("resourceId")
        if not resource_id:
            raise RemoteRegistrationError(
                "Drive accepted the watch without a resourceId", folder_id=folder_id
            )

        granted = data.get("expiration")
        return WatchChannelInfo(
            channel_id=data.get("id", channel_id),
            resource_id=resource_id,
            expires_at=from_epoch_ms(granted) if granted else expiration,
            resource_uri=data.get("resourceUri"),
        )

    async def stop_channel(self, access_token: str, channel_id: str, resource_id: str) -> None:
        """Stop a channel.

        Raises:
            RemoteDeregistrationError: If Drive rejects the request or is unreachable.
        """
        try:
            response = await self.http.post(
                f"{self.api_base}/channels/stop",
                headers=self._auth(access_token),
                json={"id": channel_id, "resourceId": resource_id},
            )
            raise_for_drive_status(response, f"Stop channel {channel_id}")
        except httpx.HTTPError as e:
            raise RemoteDeregistrationError(f"Stop channel request failed: {e}") from e
        except GoogleDriveError as e:
            raise RemoteDeregistrationError(str(e), status_code=e.status_code) from e

    async def list_folder_images(self, access_token: str, folder_id: str) -> list[FileInfo]:
        """List non-trashed images directly inside a folder.

        Args:
            access_token: Owner's Drive access token.
            folder_id: Folder to list.

        Returns:
            Images in the folder, following all result pages.
        """
        files: list[FileInfo] = []
        page_token: str | None = None

        while True:
            params = {
                "q": f"'{folder_id}' in parents and mimeType contains 'image/' and trashed = false",
                "fields": IMAGE_LIST_FIELDS,
                "pageSize": "1000",
                "orderBy": "name",
            }
            if page_token:
                params["pageToken"] = page_token

            async def _request() -> dict:
                response = await self.http.get(
                    f"{self.api_base}/files",
                    headers=self._auth(access_token),
                    params=params,
                )
                raise_for_drive_status(response, f"List folder {folder_id}")
                return response.json()

            data = await with_rate_limit_retry(_request, operation="list_folder_images")

            for item in data.get("files", []):
                files.append(
                    FileInfo(
                        id=item["id"],
                        name=item.get("name", ""),
                        mime_type=item.get("mimeType", ""),
                        thumbnail_url=item.get("thumbnailLink"),
                        web_view_url=item.get("webViewLink"),
                        modified_time=item.get("modifiedTime"),
                    )
                )

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.debug("drive_folder_listed", folder_id=folder_id, files_count=len(files))
        return files

    async def fetch_thumbnail(self, photo_id: str, width: int) -> ThumbnailImage:
        """Fetch a resized rendition of a photo from Google's image CDN.

        Raises:
            GoogleDriveError: With the upstream status when the image is unavailable.
        """
        url = f"{settings.google_thumbnail_base.rstrip('/')}/{photo_id}=w{width}"
        try:
            response = await self.http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise GoogleDriveError(f"Thumbnail request failed: {e}", status_code=502) from e

        if not response.is_success:
            raise GoogleDriveError(
                f"Thumbnail for {photo_id} unavailable", status_code=response.status_code
            )

        return ThumbnailImage(
            content=response.content,
            content_type=response.headers.get("content-type", "image/jpeg"),
        )
