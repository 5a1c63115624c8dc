"""
Tests for ChangeFeed delivery and StatusCache merging.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from provisioning.services.change_feed import (
    ASSOCIATIONS_TABLE,
    PLATFORMS_TABLE,
    ChangeEvent,
    ChangeFeed,
)
from provisioning.services.status_cache import StatusCache, as_utc

ORG = "11111111-1111-1111-1111-111111111111"
T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def association_event(status, updated_at, action="update", org=ORG):
    return ChangeEvent(
        table=ASSOCIATIONS_TABLE,
        action=action,
        organization_id=org,
        key="f1:amove",
        record={"freelancer_id": "f1", "platform_id": "amove", "status": status, "updated_at": updated_at},
        occurred_at=updated_at,
    )


class TestChangeFeed:
    """Test subscription scoping and delivery."""

    @pytest.mark.asyncio
    async def test_scoped_by_org_and_table(self):
        feed = ChangeFeed()
        everything, platforms_only = [], []
        feed.subscribe(ORG, everything.append)
        feed.subscribe(ORG, platforms_only.append, table=PLATFORMS_TABLE)

        await feed.publish(association_event("active", T0))
        await feed.publish(association_event("active", T0, org="other"))

        assert len(everything) == 1
        assert platforms_only == []

    @pytest.mark.asyncio
    async def test_publish_stamps_origin(self):
        feed = ChangeFeed(origin="proc-a")
        received = []
        feed.subscribe(ORG, received.append)

        await feed.publish(association_event("active", T0))

        assert received[0].origin == "proc-a"

    @pytest.mark.asyncio
    async def test_async_callbacks_and_failing_subscriber(self):
        feed = ChangeFeed()
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        async def collect(event):
            received.append(event)

        feed.subscribe(ORG, broken)
        feed.subscribe(ORG, collect)

        await feed.publish(association_event("active", T0))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_forwarders_only_see_local_events(self):
        feed = ChangeFeed()
        forwarded = []

        async def forward(event):
            forwarded.append(event)

        feed.add_forwarder(forward)
        await feed.publish(association_event("active", T0))
        await feed.deliver(association_event("failed", T0))

        assert len(forwarded) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        feed = ChangeFeed()
        received = []
        subscription = feed.subscribe(ORG, received.append)
        subscription.unsubscribe()

        await feed.publish(association_event("active", T0))

        assert received == []
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_subscribe_all_spans_organizations(self):
        feed = ChangeFeed()
        received = []
        feed.subscribe_all(received.append, table=ASSOCIATIONS_TABLE)

        await feed.publish(association_event("active", T0))
        await feed.deliver(association_event("active", T0, org="other"))
        await feed.publish(ChangeEvent(table=PLATFORMS_TABLE, action="update", organization_id=ORG, key="amove"))

        assert [e.organization_id for e in received] == [ORG, "other"]

    @pytest.mark.asyncio
    async def test_stream(self):
        feed = ChangeFeed()
        stream = feed.stream(ORG)
        next_event = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        await feed.publish(association_event("active", T0))

        event = await asyncio.wait_for(next_event, 1)
        assert event.record["status"] == "active"
        await stream.aclose()
        assert feed.subscriber_count == 0


class TestStatusCache:
    """Optimistic local updates and timestamp-ordered remote merges."""

    def test_echo_of_local_write_is_noop(self):
        cache = StatusCache()
        cache.apply_local(ASSOCIATIONS_TABLE, {"freelancer_id": "f1", "platform_id": "amove", "status": "active", "updated_at": T0})

        assert cache.apply_remote(association_event("active", T0)) is False
        assert cache.association("f1", "amove")["status"] == "active"

    def test_stale_notification_does_not_regress(self):
        cache = StatusCache()
        cache.apply_local(ASSOCIATIONS_TABLE, {"freelancer_id": "f1", "platform_id": "amove", "status": "active", "updated_at": T0})

        applied = cache.apply_remote(association_event("provisioning", T0 - timedelta(seconds=5)))

        assert applied is False
        assert cache.association("f1", "amove")["status"] == "active"

    def test_newer_remote_change_wins(self):
        cache = StatusCache()
        cache.apply_local(ASSOCIATIONS_TABLE, {"freelancer_id": "f1", "platform_id": "amove", "status": "active", "updated_at": T0})

        assert cache.apply_remote(association_event("deactivated", T0 + timedelta(seconds=1)))
        assert cache.association("f1", "amove")["status"] == "deactivated"

    def test_delete_hides_entry(self):
        cache = StatusCache()
        cache.apply_remote(association_event("active", T0))

        cache.apply_remote(association_event("active", T0 + timedelta(seconds=1), action="delete"))

        assert cache.association("f1", "amove") is None
        assert len(cache) == 0

    def test_iso_and_naive_timestamps(self):
        assert as_utc("2024-01-15T12:00:00Z") == T0
        assert as_utc(datetime(2024, 1, 15, 12, 0)) == T0

    def test_unknown_table_ignored(self):
        cache = StatusCache()
        event = ChangeEvent(table="onboarding_progress", action="update", organization_id=ORG, key="f1")

        assert cache.apply_remote(event) is False

    @pytest.mark.asyncio
    async def test_bind_tracks_feed(self):
        feed = ChangeFeed()
        cache = StatusCache()
        cache.bind(feed, ORG)

        await feed.publish(association_event("failed", T0))

        assert cache.associations_for("f1")[0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_attach_tracks_every_organization(self):
        feed = ChangeFeed()
        cache = StatusCache()
        cache.attach(feed)

        await feed.deliver(association_event("active", T0, org="other"))

        assert cache.association("f1", "amove")["status"] == "active"

    def test_seed_never_overrides_newer_entry(self):
        cache = StatusCache()
        cache.apply_local(ASSOCIATIONS_TABLE, {"freelancer_id": "f1", "platform_id": "amove", "status": "active", "updated_at": T0})

        seeded = cache.seed(
            ASSOCIATIONS_TABLE,
            {"freelancer_id": "f1", "platform_id": "amove", "status": "provisioning", "updated_at": T0 - timedelta(seconds=1)},
        )

        assert seeded is False
        cache.forget_associations("f1")
        assert cache.associations_for("f1") == []
