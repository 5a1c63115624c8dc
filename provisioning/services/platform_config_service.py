# provisioning/services/platform_config_service.py
"""
Platform configuration store.

One PlatformConfiguration row per (organization, platform) holding the enable
flag and the opaque config blob passed to the platform module. Three states
are distinguished and rendered differently by callers:

    no row                       never configured
    row, is_enabled=False        saved but inactive
    row, is_enabled=True, {}     enabled, not yet configured (is_configured() False)

Saving a non-empty config enables the platform in the same write: an operator
who fills in credentials and saves expects it to go live. Passing
is_enabled=False alongside the config keeps it saved but inactive.

Writes to the same (organization, platform) are serialized; the last writer
wins. Every committed write is published on the ChangeFeed as a
public_record(), which carries the config keys but never their values.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select

from ..database.models import PlatformConfiguration, as_uuid, utcnow
from .change_feed import PLATFORMS_TABLE, ChangeCallback, ChangeEvent, ChangeFeed, Subscription
from .connection_tester import ConnectionTestResult, ConnectionTester
from .database_service import DatabaseService
from .lock_service import KeyedLockService
from .platform_registry import PlatformRegistry
from .status_cache import StatusCache


def public_record(row: PlatformConfiguration) -> Dict[str, Any]:
    """Row snapshot safe to publish or cache: config values are replaced by their keys."""
    record = row.to_dict()
    config = record.pop("config", None) or {}
    record["configured"] = bool(config)
    record["config_keys"] = sorted(config.keys())
    return record


class PlatformStatus(BaseModel):
    """Connection status of one platform for one organization."""

    platform_id: str
    enabled: bool = False
    configured: bool = False
    connected: bool = False
    last_checked: Optional[datetime] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PlatformConfigService:
    """Per-organization platform configuration with change notification."""

    def __init__(
        self,
        db: DatabaseService,
        registry: PlatformRegistry,
        feed: ChangeFeed,
        cache: Optional[StatusCache] = None,
        tester: Optional[ConnectionTester] = None,
    ):
        self._db = db
        self._registry = registry
        self._feed = feed
        self._cache = cache if cache is not None else StatusCache()
        self._tester = tester or ConnectionTester()
        self._locks = KeyedLockService("platform_config")
        self._statuses: Dict[tuple, PlatformStatus] = {}
        self._logger = logging.getLogger("provisioning.platform_config")

    @property
    def tester(self) -> ConnectionTester:
        return self._tester

    @staticmethod
    def is_configured(configuration: Optional[PlatformConfiguration]) -> bool:
        return bool(configuration is not None and configuration.config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, organization_id: Any, platform_id: str) -> Optional[PlatformConfiguration]:
        async with self._db.get_session() as session:
            return await self._get(session, as_uuid(organization_id), platform_id)

    @staticmethod
    async def _get(session, organization_id, platform_id: str) -> Optional[PlatformConfiguration]:
        result = await session.execute(
            select(PlatformConfiguration)
            .where(PlatformConfiguration.organization_id == organization_id)
            .where(PlatformConfiguration.platform_id == platform_id)
        )
        return result.scalar_one_or_none()

    async def list_for_org(self, organization_id: Any) -> List[PlatformConfiguration]:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(PlatformConfiguration)
                .where(PlatformConfiguration.organization_id == as_uuid(organization_id))
                .order_by(PlatformConfiguration.platform_id)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _new_row(self, organization_id, platform_id: str) -> PlatformConfiguration:
        module = self._registry.get(platform_id)
        if module is not None:
            display_name = module.metadata.display_name
            category = module.metadata.category.value
        else:
            display_name, category = platform_id, "platforms"
        now = utcnow()
        return PlatformConfiguration(
            organization_id=organization_id,
            platform_id=platform_id,
            display_name=display_name,
            category=category,
            config={},
            is_enabled=False,
            created_at=now,
            updated_at=now,
        )

    async def upsert(
        self, organization_id: Any, platform_id: str, patch: Dict[str, Any]
    ) -> PlatformConfiguration:
        """
        Create or update a platform configuration.

        Args:
            organization_id: Owning organization
            platform_id: Platform identifier
            patch: Any of config (replaces the stored blob), is_enabled,
                display_name, category

        Returns:
            PlatformConfiguration: The stored row
        """
        org_id = as_uuid(organization_id)
        async with self._locks.lock(f"{org_id}:{platform_id}"):
            async with self._db.get_session() as session:
                row = await self._get(session, org_id, platform_id)
                action = "update"
                if row is None:
                    row = self._new_row(org_id, platform_id)
                    session.add(row)
                    action = "insert"

                if "config" in patch:
                    row.config = dict(patch["config"] or {})
                    if row.config:
                        row.is_enabled = True
                if "is_enabled" in patch:
                    row.is_enabled = bool(patch["is_enabled"])
                for attr in ("display_name", "category"):
                    if patch.get(attr):
                        setattr(row, attr, patch[attr])
                row.updated_at = utcnow()

            self._logger.info(
                f"Saved {platform_id} for org {org_id} (enabled={row.is_enabled}, "
                f"config keys={sorted(row.config.keys())})"
            )
            await self._changed(action, row)
            return row

    async def set_enabled(
        self, organization_id: Any, platform_id: str, enabled: bool
    ) -> Optional[PlatformConfiguration]:
        """
        Enable or disable a platform.

        Enabling a never-configured platform creates an empty, enabled row.
        Disabling a never-configured platform is a no-op and returns None.
        """
        org_id = as_uuid(organization_id)
        async with self._locks.lock(f"{org_id}:{platform_id}"):
            async with self._db.get_session() as session:
                row = await self._get(session, org_id, platform_id)
                action = "update"
                if row is None:
                    if not enabled:
                        self._logger.info(f"{platform_id} not configured for org {org_id}, nothing to disable")
                        return None
                    row = self._new_row(org_id, platform_id)
                    session.add(row)
                    action = "insert"
                row.is_enabled = enabled
                row.updated_at = utcnow()

            self._logger.info(f"{'Enabled' if enabled else 'Disabled'} {platform_id} for org {org_id}")
            await self._changed(action, row)
            return row

    async def enable_many(self, organization_id: Any, platform_ids: List[str]) -> List[PlatformConfiguration]:
        return [await self.set_enabled(organization_id, pid, True) for pid in platform_ids]

    async def disable_many(self, organization_id: Any, platform_ids: List[str]) -> List[Optional[PlatformConfiguration]]:
        return [await self.set_enabled(organization_id, pid, False) for pid in platform_ids]

    async def _changed(self, action: str, row: PlatformConfiguration) -> None:
        record = public_record(row)
        self._cache.apply_local(PLATFORMS_TABLE, record)
        await self._feed.publish(
            ChangeEvent(
                table=PLATFORMS_TABLE,
                action=action,
                organization_id=str(row.organization_id),
                key=row.platform_id,
                record=record,
                occurred_at=row.updated_at,
            )
        )

    def subscribe(self, organization_id: Any, callback: ChangeCallback) -> Subscription:
        return self._feed.subscribe(organization_id, callback, table=PLATFORMS_TABLE)

    # ------------------------------------------------------------------
    # Connection status
    # ------------------------------------------------------------------

    def get_status(self, organization_id: Any, platform_id: str) -> PlatformStatus:
        """
        Connection status of a platform.

        enabled and configured come from the status cache, so changes made by
        other processes show up as soon as their notification is merged.
        """
        key = (str(organization_id), platform_id)
        status = self._statuses.get(key)
        if status is None:
            status = self._statuses[key] = PlatformStatus(platform_id=platform_id)
        cached = self._cache.configuration(organization_id, platform_id)
        if cached is not None:
            status.enabled = bool(cached.get("is_enabled"))
            status.configured = bool(cached.get("configured"))
        return status

    async def test_saved(self, organization_id: Any, platform_id: str) -> ConnectionTestResult:
        """Test the stored configuration and record the outcome in the status cache."""
        module = self._registry.get(platform_id)
        if module is None:
            return ConnectionTestResult(
                success=False, status="not_tested", message="Platform not found",
                error="platform module not found",
            )

        row = await self.get(organization_id, platform_id)
        if row is None or not row.is_enabled:
            return ConnectionTestResult(
                success=False, status="not_tested", message="Platform not enabled",
                error="platform not enabled",
            )

        result = await self._tester.test(module, row.config or {})
        status = self.get_status(organization_id, platform_id)
        status.enabled = row.is_enabled
        status.configured = bool(row.config)
        status.connected = result.success
        status.last_checked = utcnow()
        status.error = result.error
        status.metadata = result.details or {}
        self._logger.info(f"Tested {platform_id} for org {organization_id}: {result.status}")
        return result

    async def test_draft(self, platform_id: str, config: Dict[str, Any]) -> ConnectionTestResult:
        """Test an unsaved configuration without recording anything."""
        module = self._registry.get(platform_id)
        if module is None:
            return ConnectionTestResult(
                success=False, status="not_tested", message="Platform not found",
                error="platform module not found",
            )
        return await self._tester.test(module, config)

    async def test_all(self, organization_id: Any) -> Dict[str, ConnectionTestResult]:
        """Test every enabled platform of an organization."""
        results: Dict[str, ConnectionTestResult] = {}
        for row in await self.list_for_org(organization_id):
            if row.is_enabled:
                results[row.platform_id] = await self.test_saved(organization_id, row.platform_id)
        return results
