"""Tests for GoogleTokenProvider."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from galleria.core.config import settings
from galleria.core.security import TokenDecryptionError, decrypt, encrypt, reset_encryption_key
from galleria.db.models import Profile
from galleria.services.google_auth import GoogleTokenProvider


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGetAccessToken:
    """Tests for the refresh token exchange."""

    async def test_exchanges_refresh_token(self, db_session, profile, oauth_configured):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"access_token": "at-1", "expires_in": 3599})

        async with _http(handler) as http:
            token = await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id)

        assert token == "at-1"
        assert str(requests[0].url) == settings.google_oauth_token_url
        form = parse_qs(requests[0].content.decode())
        assert form["refresh_token"] == ["refresh-token-1"]
        assert form["grant_type"] == ["refresh_token"]
        assert form["client_id"] == ["client-id"]

    async def test_oauth_not_configured(self, db_session, profile):
        async with _http(lambda request: httpx.Response(500)) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id) is None

    async def test_unknown_user(self, db_session, oauth_configured):
        async with _http(lambda request: httpx.Response(500)) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user("nobody") is None

    async def test_user_without_refresh_token(self, db_session, oauth_configured):
        profile = Profile(username="no-drive")
        db_session.add(profile)
        await db_session.commit()

        async with _http(lambda request: httpx.Response(500)) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id) is None

    async def test_revoked_refresh_token(self, db_session, profile, oauth_configured):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        async with _http(handler) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id) is None

    async def test_network_failure(self, db_session, profile, oauth_configured):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with _http(handler) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id) is None

    async def test_undecryptable_token(self, db_session, oauth_configured):
        profile = Profile(username="rotated", google_refresh_token_encrypted="not-a-fernet-token")
        db_session.add(profile)
        await db_session.commit()

        async with _http(lambda request: httpx.Response(500)) as http:
            assert await GoogleTokenProvider(db_session, http).get_access_token_for_user(profile.id) is None


class TestSecurity:
    def test_round_trip(self):
        assert decrypt(encrypt("secret")) == "secret"

    def test_wrong_key(self):
        ciphertext = encrypt("secret")
        reset_encryption_key()
        try:
            with pytest.raises(TokenDecryptionError):
                decrypt(ciphertext)
        finally:
            reset_encryption_key()
