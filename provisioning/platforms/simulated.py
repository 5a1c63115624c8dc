# provisioning/platforms/simulated.py
"""
Simulated platform modules.

Stand-ins for platforms whose real API clients are not part of this service.
Each module keeps its accounts in a RemoteDirectory, which plays the role of
the remote system: it is shared between fresh() copies of the module, exactly
like a real remote account store would be, while the module's own config
state stays per-copy.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import (
    BasePlatformModule,
    FreelancerProfile,
    PlatformCategory,
    PlatformMetadata,
    PlatformResult,
    RemoteAccount,
)


class RemoteDirectory:
    """In-memory account store standing in for a platform's user directory."""

    def __init__(self):
        self._accounts: Dict[str, RemoteAccount] = {}
        self._lock = asyncio.Lock()

    async def add(self, account: RemoteAccount) -> None:
        async with self._lock:
            self._accounts[account.id] = account

    async def remove(self, remote_id: str) -> Optional[RemoteAccount]:
        async with self._lock:
            return self._accounts.pop(remote_id, None)

    async def replace(self, account: RemoteAccount) -> None:
        async with self._lock:
            self._accounts[account.id] = account

    def get(self, remote_id: str) -> Optional[RemoteAccount]:
        return self._accounts.get(remote_id)

    def find_by_email(self, email: str) -> Optional[RemoteAccount]:
        email = email.lower()
        return next((a for a in self._accounts.values() if a.email.lower() == email), None)

    def all(self) -> List[RemoteAccount]:
        return list(self._accounts.values())


class SimulatedPlatformModule(BasePlatformModule):
    """Deterministic module backed by a RemoteDirectory."""

    def __init__(
        self,
        metadata: PlatformMetadata,
        required_fields: List[str],
        latency: float = 0.0,
    ):
        super().__init__()
        self.metadata = metadata
        self._required_fields = list(required_fields)
        self._latency = latency
        self.directory = RemoteDirectory()

    def required_config_fields(self) -> List[str]:
        return list(self._required_fields)

    async def _delay(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    async def test_connection(self) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        await self._delay()
        return PlatformResult.ok({"status": "connected", "accounts": len(self.directory.all())})

    async def create_user(self, profile: FreelancerProfile) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        await self._delay()

        if self.directory.find_by_email(profile.email):
            return PlatformResult.fail(f"Email already exists on {self.metadata.display_name}")

        account = RemoteAccount(
            id=f"{self.platform_id}-{uuid.uuid4().hex[:12]}",
            email=profile.email,
            username=profile.username or profile.email.split("@")[0],
            display_name=profile.full_name,
            metadata={
                **profile.extra,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        await self.directory.add(account)
        return PlatformResult.ok(account)

    async def update_user(self, remote_id: str, profile: FreelancerProfile) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        await self._delay()

        existing = self.directory.get(remote_id)
        if existing is None:
            return PlatformResult.fail("User not found")
        updated = existing.model_copy(
            update={
                "email": profile.email,
                "display_name": profile.full_name,
                "metadata": {**existing.metadata, **profile.extra},
            }
        )
        await self.directory.replace(updated)
        return PlatformResult.ok(updated)

    async def delete_user(self, remote_id: str) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        await self._delay()

        removed = await self.directory.remove(remote_id)
        if removed is None:
            return PlatformResult.fail("User not found")
        return PlatformResult.ok({"id": remote_id, "deleted": True})

    async def get_user(self, remote_id: str) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        account = self.directory.get(remote_id)
        if account is None:
            return PlatformResult.fail("User not found")
        return PlatformResult.ok(account)

    async def list_users(self) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        return PlatformResult.ok(self.directory.all())


class FiverrModule(SimulatedPlatformModule):
    """Fiverr integration, currently switched off on the remote side."""

    DISABLED = "Fiverr integration is currently disabled"

    def __init__(self):
        super().__init__(
            PlatformMetadata(
                id="fiverr",
                name="Fiverr",
                display_name="Fiverr",
                description="Marketplace for creative and digital services",
                category=PlatformCategory.FREELANCE_PLATFORMS,
                config_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": {"type": "string", "title": "API Key", "writeOnly": True},
                        "webhook_url": {"type": "string", "title": "Webhook URL"},
                    },
                    "required": ["apiKey"],
                },
            ),
            required_fields=["apiKey", "webhook_url"],
        )

    def validate_config(self, config: Dict[str, Any]) -> bool:
        return False

    async def initialize(self, config: Dict[str, Any]) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def test_connection(self) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def create_user(self, profile: FreelancerProfile) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def update_user(self, remote_id: str, profile: FreelancerProfile) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def delete_user(self, remote_id: str) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def get_user(self, remote_id: str) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)

    async def list_users(self) -> PlatformResult:
        return PlatformResult.fail(self.DISABLED)


def amove_module() -> SimulatedPlatformModule:
    return SimulatedPlatformModule(
        PlatformMetadata(
            id="amove",
            name="aMove",
            display_name="aMove",
            description="Cloud file management and storage platform",
            category=PlatformCategory.FILE_SHARING,
            config_schema={
                "type": "object",
                "properties": {
                    "apiKey": {"type": "string", "title": "API Key", "writeOnly": True},
                    "apiSecret": {"type": "string", "title": "API Secret", "writeOnly": True},
                    "baseUrl": {
                        "type": "string",
                        "title": "Base URL",
                        "default": "https://api.amove.com/v1",
                    },
                },
                "required": ["apiKey", "apiSecret"],
            },
        ),
        required_fields=["apiKey", "apiSecret"],
    )


def upwork_module() -> SimulatedPlatformModule:
    return SimulatedPlatformModule(
        PlatformMetadata(
            id="upwork",
            name="Upwork",
            display_name="Upwork",
            description="Global freelancing platform for finding and hiring freelancers",
            category=PlatformCategory.FREELANCE_PLATFORMS,
            config_schema={
                "type": "object",
                "properties": {
                    "clientId": {"type": "string", "title": "Client ID"},
                    "clientSecret": {"type": "string", "title": "Client Secret", "writeOnly": True},
                    "redirectUri": {"type": "string", "title": "Redirect URI"},
                },
                "required": ["clientId", "clientSecret", "redirectUri"],
            },
        ),
        required_fields=["clientId", "clientSecret", "redirectUri"],
    )


def freelancer_com_module() -> SimulatedPlatformModule:
    return SimulatedPlatformModule(
        PlatformMetadata(
            id="freelancer",
            name="Freelancer.com",
            display_name="Freelancer.com",
            description="Freelancing and crowdsourcing marketplace",
            category=PlatformCategory.FREELANCE_PLATFORMS,
            config_schema={
                "type": "object",
                "properties": {
                    "oAuthToken": {"type": "string", "title": "OAuth Token", "writeOnly": True},
                    "sandboxMode": {"type": "boolean", "title": "Sandbox Mode", "default": False},
                },
                "required": ["oAuthToken"],
            },
        ),
        required_fields=["oAuthToken"],
    )


def parsec_module() -> SimulatedPlatformModule:
    return SimulatedPlatformModule(
        PlatformMetadata(
            id="parsec",
            name="parsec",
            display_name="Parsec Teams",
            description="Low latency remote desktop access for teams",
            category=PlatformCategory.SCREEN_SHARING,
            config_schema={
                "type": "object",
                "properties": {
                    "apiKey": {"type": "string", "title": "API Key", "writeOnly": True},
                    "teamId": {"type": "string", "title": "Team ID"},
                },
                "required": ["apiKey", "teamId"],
            },
        ),
        required_fields=["apiKey", "teamId"],
    )


def monday_module() -> SimulatedPlatformModule:
    # workspaceId is optional; the main workspace is used when it is absent
    return SimulatedPlatformModule(
        PlatformMetadata(
            id="monday",
            name="monday",
            display_name="Monday.com",
            description="Work management platform that helps teams collaborate and track projects",
            category=PlatformCategory.COLLABORATION,
            config_schema={
                "type": "object",
                "properties": {
                    "apiToken": {"type": "string", "title": "API Token", "writeOnly": True},
                    "workspaceId": {"type": "string", "title": "Workspace ID"},
                },
                "required": ["apiToken"],
            },
        ),
        required_fields=["apiToken"],
    )
