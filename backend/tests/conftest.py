"""Pytest configuration and fixtures."""

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Create a temporary directory for the config path
_test_tmp_dir = tempfile.mkdtemp(prefix="galleria_test_")

# Set config paths BEFORE importing galleria modules
os.environ["GALLERIA_CONFIG_PATH"] = _test_tmp_dir
os.environ.pop("GALLERIA_DATABASE_URL", None)
os.environ.pop("GALLERIA_ENCRYPTION_KEY", None)

from galleria.core.config import settings  # noqa: E402
from galleria.core.security import encrypt  # noqa: E402
from galleria.db import get_db, get_session_factory  # noqa: E402
from galleria.db.base import Base  # noqa: E402
from galleria.db.models import Gallery, Profile, WatchSubscription  # noqa: E402
from galleria.main import app  # noqa: E402
from galleria.services.google_drive import GoogleDriveClient, WatchChannelInfo  # noqa: E402

TEST_APP_URL = "https://galleria.test"


@pytest.fixture
async def db_engine(tmp_path: Path):
    """Create a per-test SQLite database with foreign keys enforced."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_galleria.db'}",
        echo=False,
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def https_app_url(monkeypatch):
    """Make this instance reachable for Drive watch registration."""
    monkeypatch.setattr(settings, "app_url", TEST_APP_URL)
    return TEST_APP_URL


@pytest.fixture
def oauth_configured(monkeypatch):
    """Configure Google OAuth client credentials."""
    monkeypatch.setattr(settings, "google_client_id", "client-id")
    monkeypatch.setattr(settings, "google_client_secret", "client-secret")


@pytest.fixture
async def profile(db_session) -> Profile:
    """Create a photographer with a stored refresh token."""
    profile = Profile(
        username="Ada",
        google_refresh_token_encrypted=encrypt("refresh-token-1"),
    )
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
async def gallery(db_session, profile) -> Gallery:
    """Create a gallery backed by folder ``f1``."""
    gallery = Gallery(
        user_id=profile.id,
        title="Summer",
        slug="summer",
        drive_folder_id="f1",
    )
    db_session.add(gallery)
    await db_session.commit()
    return gallery


@pytest.fixture
async def subscription(db_session, gallery) -> WatchSubscription:
    """Create a watch on ``f1`` under channel ``c1``."""
    subscription = WatchSubscription(
        user_id=gallery.user_id,
        folder_id="f1",
        gallery_id=gallery.id,
        channel_id="c1",
        resource_id="r1",
        expires_at=datetime.now(timezone.utc) + timedelta(days=3),
    )
    db_session.add(subscription)
    await db_session.commit()
    return subscription


def _accept_watch(access_token, folder_id, channel_id, address, expiration):
    return WatchChannelInfo(
        channel_id=channel_id,
        resource_id=f"res-{channel_id[-8:]}",
        expires_at=expiration,
    )


@pytest.fixture
def drive() -> MagicMock:
    """Drive client mock that accepts every watch and stop."""
    drive = MagicMock(spec=GoogleDriveClient)
    drive.watch_folder = AsyncMock(side_effect=_accept_watch)
    drive.stop_channel = AsyncMock(return_value=None)
    return drive


@pytest.fixture
def client(session_maker):
    """Create a test client for the FastAPI application with test database."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_maker

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp directories after test session."""
    if Path(_test_tmp_dir).exists():
        shutil.rmtree(_test_tmp_dir, ignore_errors=True)
