import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

# Point the default database at a throwaway directory before importing
# provisioning modules; every test still gets its own database below.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="provisioning_pytest_"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SESSION_DIR}/default.db")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("PLATFORM_CALL_TIMEOUT", "5")

import pytest
import pytest_asyncio

from provisioning.platforms import (
    FreelancerProfile,
    PlatformCategory,
    PlatformMetadata,
    PlatformResult,
    SimulatedPlatformModule,
)
from provisioning.services.container import ServiceContainer, build_container
from provisioning.services.database_service import DatabaseService
from provisioning.services.platform_registry import PlatformRegistry


def pytest_sessionfinish(session, exitstatus):
    """Cleanup temporary test files after the test session."""
    shutil.rmtree(_SESSION_DIR, ignore_errors=True)


class ScriptedModule(SimulatedPlatformModule):
    """
    Simulated platform whose outcomes are set by the test.

    Call counts and scripted failures live in shared dicts so they are seen
    by every fresh() copy the engine makes.
    """

    def __init__(self, platform_id: str, required_fields: Optional[List[str]] = None):
        super().__init__(
            PlatformMetadata(
                id=platform_id,
                name=platform_id,
                display_name=platform_id.title(),
                category=PlatformCategory.COLLABORATION,
            ),
            required_fields=required_fields if required_fields is not None else ["apiKey"],
        )
        self.calls: Dict[str, int] = {"initialize": 0, "create_user": 0, "delete_user": 0, "test_connection": 0}
        self.script: Dict[str, Any] = {}
        self.in_flight = {"current": 0, "peak": 0}

    async def initialize(self, config: Dict[str, Any]) -> PlatformResult:
        self.calls["initialize"] += 1
        if "initialize_error" in self.script:
            return PlatformResult.fail(self.script["initialize_error"])
        return await super().initialize(config)

    async def test_connection(self) -> PlatformResult:
        self.calls["test_connection"] += 1
        if "connection_error" in self.script:
            return PlatformResult.fail(self.script["connection_error"])
        return await super().test_connection()

    async def create_user(self, profile: FreelancerProfile) -> PlatformResult:
        self.calls["create_user"] += 1
        self.in_flight["current"] += 1
        self.in_flight["peak"] = max(self.in_flight["peak"], self.in_flight["current"])
        try:
            if self.script.get("create_delay"):
                await asyncio.sleep(self.script["create_delay"])
            if "create_raises" in self.script:
                raise self.script["create_raises"]
            if "create_error" in self.script:
                return PlatformResult.fail(self.script["create_error"])
            return await super().create_user(profile)
        finally:
            self.in_flight["current"] -= 1

    async def delete_user(self, remote_id: str) -> PlatformResult:
        self.calls["delete_user"] += 1
        if "delete_error" in self.script:
            return PlatformResult.fail(self.script["delete_error"])
        return await super().delete_user(remote_id)


VALID_CONFIG = {"apiKey": "secret-key"}


@pytest.fixture
def modules() -> Dict[str, ScriptedModule]:
    return {pid: ScriptedModule(pid) for pid in ("amove", "upwork", "parsec", "fiverr")}


@pytest.fixture
def registry(modules) -> PlatformRegistry:
    return PlatformRegistry(modules.values()).freeze()


@pytest_asyncio.fixture
async def db(tmp_path):
    service = DatabaseService(database_url=f"sqlite+aiosqlite:///{tmp_path}/provisioning.db")
    await service.init_db()
    yield service
    await service.close()


@pytest_asyncio.fixture
async def services(db, registry) -> ServiceContainer:
    return build_container(db, registry=registry, timeout=1.0)


@pytest_asyncio.fixture
async def organization(services):
    return await services.freelancers.create_organization("Acme Studio", "acme")


@pytest_asyncio.fixture
async def freelancer(services, organization):
    return await services.freelancers.create(
        organization.id,
        {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"},
        created_by="tests",
    )


@pytest_asyncio.fixture
async def enabled_platforms(services, organization):
    """amove, upwork and parsec enabled with a valid config; fiverr saved but disabled."""
    for pid in ("amove", "upwork", "parsec"):
        await services.configs.upsert(organization.id, pid, {"config": VALID_CONFIG})
    await services.configs.upsert(organization.id, "fiverr", {"config": VALID_CONFIG, "is_enabled": False})
    return organization
