"""
Unit tests for PlatformConfigService.

Tests the three configuration states, auto-enable on save, bulk toggles,
change notification, and connection testing against saved configs.
"""

import asyncio
from datetime import timedelta

import pytest

from provisioning.services.change_feed import PLATFORMS_TABLE, ChangeEvent
from provisioning.services.platform_config_service import PlatformConfigService, public_record
from provisioning.services.status_cache import StatusCache, as_utc


class TestUpsert:
    """Test upsert()."""

    @pytest.mark.asyncio
    async def test_saving_config_enables_platform(self, services, organization):
        row = await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})

        assert row.is_enabled is True
        assert row.config == {"apiKey": "k"}
        assert row.display_name == "Amove"

    @pytest.mark.asyncio
    async def test_explicit_disable_overrides_auto_enable(self, services, organization):
        row = await services.configs.upsert(
            organization.id, "amove", {"config": {"apiKey": "k"}, "is_enabled": False}
        )

        assert row.is_enabled is False
        assert services.configs.is_configured(row)

    @pytest.mark.asyncio
    async def test_config_replaces_previous_blob(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "old", "extra": 1}})
        row = await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "new"}})

        assert row.config == {"apiKey": "new"}
        assert len(await services.configs.list_for_org(organization.id)) == 1

    @pytest.mark.asyncio
    async def test_saving_empty_config_keeps_enable_flag(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}, "is_enabled": False})
        row = await services.configs.upsert(organization.id, "amove", {"config": {}})

        assert row.is_enabled is False
        assert not services.configs.is_configured(row)

    @pytest.mark.asyncio
    async def test_concurrent_writes_last_writer_wins(self, services, organization):
        await asyncio.gather(*(
            services.configs.upsert(organization.id, "amove", {"config": {"apiKey": f"k{i}"}})
            for i in range(5)
        ))

        rows = await services.configs.list_for_org(organization.id)
        assert len(rows) == 1
        assert rows[0].config["apiKey"] in {f"k{i}" for i in range(5)}


class TestSetEnabled:
    """Test set_enabled() and the configuration states."""

    @pytest.mark.asyncio
    async def test_enable_unconfigured_creates_empty_row(self, services, organization):
        row = await services.configs.set_enabled(organization.id, "upwork", True)

        assert row.is_enabled is True
        assert row.config == {}
        assert services.configs.is_configured(row) is False

    @pytest.mark.asyncio
    async def test_disable_unconfigured_is_noop(self, services, organization):
        assert await services.configs.set_enabled(organization.id, "upwork", False) is None
        assert await services.configs.get(organization.id, "upwork") is None

    @pytest.mark.asyncio
    async def test_disable_keeps_config(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})
        row = await services.configs.set_enabled(organization.id, "amove", False)

        assert row.is_enabled is False
        assert row.config == {"apiKey": "k"}

    @pytest.mark.asyncio
    async def test_enable_and_disable_many(self, services, organization):
        enabled = await services.configs.enable_many(organization.id, ["amove", "upwork"])
        disabled = await services.configs.disable_many(organization.id, ["amove", "parsec"])

        assert [r.is_enabled for r in enabled] == [True, True]
        assert disabled[0].is_enabled is False
        assert disabled[1] is None

    @pytest.mark.asyncio
    async def test_organizations_are_isolated(self, services, organization):
        other = await services.freelancers.create_organization("Other", "other")
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})

        assert await services.configs.get(other.id, "amove") is None


class TestChangeNotification:
    """Writes are published and cached."""

    @pytest.mark.asyncio
    async def test_subscribers_receive_changes(self, services, organization):
        events = []
        subscription = services.configs.subscribe(organization.id, events.append)

        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})
        await services.configs.set_enabled(organization.id, "amove", False)
        subscription.unsubscribe()
        await services.configs.set_enabled(organization.id, "amove", True)

        assert [e.action for e in events] == ["insert", "update"]
        assert all(e.table == PLATFORMS_TABLE for e in events)
        assert events[-1].record["is_enabled"] is False

    @pytest.mark.asyncio
    async def test_local_write_updates_cache_immediately(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})

        cached = services.cache.configuration(organization.id, "amove")
        assert cached["is_enabled"] is True

    @pytest.mark.asyncio
    async def test_events_carry_config_keys_not_values(self, services, organization):
        events = []
        services.configs.subscribe(organization.id, events.append)

        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "secret-key"}})

        record = events[0].record
        assert "config" not in record
        assert record["config_keys"] == ["apiKey"]
        assert record["configured"] is True
        assert "secret-key" not in str(record)
        assert "secret-key" not in str(services.cache.configuration(organization.id, "amove"))

    @pytest.mark.asyncio
    async def test_empty_shared_cache_is_kept(self, services, organization):
        cache = StatusCache()
        configs = PlatformConfigService(services.db, services.registry, services.feed, cache=cache)

        await configs.upsert(organization.id, "upwork", {"config": {"apiKey": "k"}})

        assert cache.configuration(organization.id, "upwork")["is_enabled"] is True

    @pytest.mark.asyncio
    async def test_status_follows_relayed_change(self, services, organization):
        row = await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})
        record = {
            **public_record(row),
            "is_enabled": False,
            "updated_at": as_utc(row.updated_at) + timedelta(seconds=5),
        }

        await services.feed.deliver(
            ChangeEvent(
                table=PLATFORMS_TABLE,
                action="update",
                organization_id=str(organization.id),
                key="amove",
                record=record,
                origin="other-process",
            )
        )

        status = services.configs.get_status(organization.id, "amove")
        assert status.enabled is False
        assert status.configured is True


class TestConnectionTesting:
    """Test test_saved(), test_draft() and test_all()."""

    @pytest.mark.asyncio
    async def test_saved_config_updates_status(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})

        result = await services.configs.test_saved(organization.id, "amove")

        assert result.success is True
        status = services.configs.get_status(organization.id, "amove")
        assert status.connected is True
        assert status.enabled is True
        assert status.last_checked is not None

    @pytest.mark.asyncio
    async def test_saved_config_failure_recorded(self, services, organization, modules):
        modules["amove"].script["connection_error"] = "Authentication failed - invalid API key"
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})

        result = await services.configs.test_saved(organization.id, "amove")

        assert result.success is False
        status = services.configs.get_status(organization.id, "amove")
        assert status.connected is False
        assert status.error == "Authentication failed - invalid API key"

    @pytest.mark.asyncio
    async def test_disabled_platform_not_tested(self, services, organization, modules):
        result = await services.configs.test_saved(organization.id, "amove")

        assert result.error == "platform not enabled"
        assert modules["amove"].calls["test_connection"] == 0

    @pytest.mark.asyncio
    async def test_unknown_platform(self, services, organization):
        result = await services.configs.test_saved(organization.id, "slack")

        assert result.error == "platform module not found"

    @pytest.mark.asyncio
    async def test_draft_does_not_touch_store_or_status(self, services, organization):
        result = await services.configs.test_draft("amove", {"apiKey": "draft"})

        assert result.success is True
        assert await services.configs.get(organization.id, "amove") is None
        assert services.configs.get_status(organization.id, "amove").last_checked is None

    @pytest.mark.asyncio
    async def test_all_only_tests_enabled(self, services, organization):
        await services.configs.upsert(organization.id, "amove", {"config": {"apiKey": "k"}})
        await services.configs.upsert(organization.id, "upwork", {"config": {"apiKey": "k"}, "is_enabled": False})

        results = await services.configs.test_all(organization.id)

        assert set(results) == {"amove"}
