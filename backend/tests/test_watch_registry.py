"""Tests for WatchRegistry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from galleria.core.config import settings
from galleria.db.base import ensure_utc
from galleria.db.models import Gallery, Profile, WatchSubscription
from galleria.services.google_drive import RemoteDeregistrationError, RemoteRegistrationError
from galleria.services.watch_registry import WatchRegistry, new_channel_id


async def _row_count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(WatchSubscription))
    return result.scalar_one()


@pytest.fixture
def registry(db_session, drive) -> WatchRegistry:
    return WatchRegistry(db_session, drive)


def test_new_channel_id_is_unique_and_scoped():
    first = new_channel_id("u1", "f1")
    second = new_channel_id("u1", "f1")

    assert first.startswith("gallery-u1-f1-")
    assert first != second


class TestRegisterWatch:
    """Tests for registration and replacement."""

    async def test_skipped_without_public_https_url(self, registry, drive, gallery, monkeypatch):
        monkeypatch.setattr(settings, "app_url", "http://localhost:3000")

        result = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        assert result is None
        drive.watch_folder.assert_not_awaited()

    async def test_registers_and_stores(self, registry, drive, gallery, db_session, https_app_url):
        before = datetime.now(timezone.utc)

        subscription = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        assert subscription is not None
        assert subscription.folder_id == "f1"
        assert subscription.gallery_id == gallery.id
        assert subscription.channel_id.startswith(f"gallery-{gallery.user_id}-f1-")
        assert ensure_utc(subscription.expires_at) > before + timedelta(days=6)
        assert await _row_count(db_session) == 1

        kwargs = drive.watch_folder.await_args.kwargs
        assert kwargs["address"] == f"{https_app_url}/api/webhooks/drive"
        drive.stop_channel.assert_not_awaited()

    async def test_second_registration_replaces_first(
        self, registry, drive, gallery, db_session, https_app_url
    ):
        first = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")
        first_channel, first_resource = first.channel_id, first.resource_id

        second = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        drive.stop_channel.assert_awaited_once_with("token", first_channel, first_resource)
        assert second.channel_id != first_channel
        assert await _row_count(db_session) == 1

        stored = await registry.find_by_folder(gallery.user_id, "f1")
        assert stored.channel_id == second.channel_id
        assert stored.resource_id == second.resource_id

    async def test_superseded_channel_no_longer_resolves(
        self, registry, gallery, subscription, https_app_url
    ):
        await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        assert await registry.find_by_channel_id("c1") is None

    async def test_deregistration_failure_does_not_block_registration(
        self, registry, drive, gallery, subscription, db_session, https_app_url
    ):
        drive.stop_channel.side_effect = RemoteDeregistrationError("404 channel not found")

        result = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        assert result is not None
        assert result.channel_id != "c1"
        assert await _row_count(db_session) == 1

    async def test_shared_folder_keeps_each_users_watch(
        self, registry, drive, gallery, db_session, https_app_url
    ):
        other = Profile(username="Grace")
        db_session.add(other)
        await db_session.commit()
        other_gallery = Gallery(user_id=other.id, title="Shared", slug="shared", drive_folder_id="f1")
        db_session.add(other_gallery)
        await db_session.commit()

        first = await registry.register_watch(gallery.user_id, "f1", gallery.id, "token-a")
        first_channel = first.channel_id
        second = await registry.register_watch(other.id, "f1", other_gallery.id, "token-b")

        drive.stop_channel.assert_not_awaited()
        assert await _row_count(db_session) == 2

        mine = await registry.find_by_channel_id(first_channel)
        assert mine is not None
        assert (mine.user_id, mine.gallery_id) == (gallery.user_id, gallery.id)
        theirs = await registry.find_by_channel_id(second.channel_id)
        assert (theirs.user_id, theirs.gallery_id) == (other.id, other_gallery.id)

    async def test_remote_rejection_propagates(self, registry, drive, gallery, db_session, https_app_url):
        drive.watch_folder.side_effect = RemoteRegistrationError(
            "Watch on folder f1 failed (404): File not found", folder_id="f1", status_code=404
        )

        with pytest.raises(RemoteRegistrationError) as exc_info:
            await registry.register_watch(gallery.user_id, "f1", gallery.id, "token")

        assert exc_info.value.folder_id == "f1"
        assert await _row_count(db_session) == 0


class TestDeregisterWatch:
    async def test_never_raises(self, registry, drive):
        drive.stop_channel.side_effect = RemoteDeregistrationError("gone")
        await registry.deregister_watch("token", "c1", "r1")

        drive.stop_channel.side_effect = RuntimeError("unexpected")
        await registry.deregister_watch("token", "c1", "r1")


class TestLookups:
    """Tests for the read side of the registry."""

    async def test_find_by_channel_id(self, registry, subscription):
        found = await registry.find_by_channel_id("c1")

        assert found is not None
        assert found.folder_id == "f1"
        assert await registry.find_by_channel_id("unknown") is None

    async def test_expired_channel_does_not_resolve(self, registry, db_session, subscription):
        subscription.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db_session.commit()

        assert await registry.find_by_channel_id("c1") is None
        assert await registry.find_by_folder(subscription.user_id, "f1") is not None

    async def test_find_by_folder_is_scoped_to_user(self, registry, subscription):
        assert await registry.find_by_folder(subscription.user_id, "f1") is not None
        assert await registry.find_by_folder("someone-else", "f1") is None

    async def test_find_expiring_before_orders_soonest_first(self, registry, db_session, gallery):
        now = datetime.now(timezone.utc)
        for folder_id, hours in (("f-late", 20), ("f-soon", 2), ("f-far", 24 * 5)):
            db_session.add(
                WatchSubscription(
                    user_id=gallery.user_id,
                    folder_id=folder_id,
                    gallery_id=gallery.id,
                    channel_id=f"c-{folder_id}",
                    resource_id=f"r-{folder_id}",
                    expires_at=now + timedelta(hours=hours),
                )
            )
        await db_session.commit()

        expiring = await registry.find_expiring_before(now + timedelta(hours=24))

        assert [s.folder_id for s in expiring] == ["f-soon", "f-late"]
