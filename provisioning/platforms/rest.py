# provisioning/platforms/rest.py
"""
Generic REST platform module.

Provisions accounts on any platform that exposes a conventional JSON user
resource:

    GET    {base_url}{users_path}            list users / connectivity check
    POST   {base_url}{users_path}            create user, responds with {"id": ...}
    GET    {base_url}{users_path}/{id}       fetch user
    PATCH  {base_url}{users_path}/{id}       update user
    DELETE {base_url}{users_path}/{id}       delete user

Authentication is a bearer token taken from `api_key`. HTTP failures are
returned as PlatformResult errors; only programming errors raise.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import (
    BasePlatformModule,
    FreelancerProfile,
    PlatformCategory,
    PlatformMetadata,
    PlatformResult,
    RemoteAccount,
)

logger = logging.getLogger("provisioning.platforms.rest")


class RestPlatformModule(BasePlatformModule):
    """User provisioning over a JSON REST API."""

    def __init__(
        self,
        platform_id: str = "rest",
        display_name: str = "Generic REST Platform",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.metadata = PlatformMetadata(
            id=platform_id,
            name=platform_id,
            display_name=display_name,
            description="Provision accounts on any service with a JSON users endpoint",
            category=PlatformCategory.COLLABORATION,
            config_schema={
                "type": "object",
                "properties": {
                    "base_url": {"type": "string", "title": "Base URL"},
                    "api_key": {"type": "string", "title": "API Key", "writeOnly": True},
                    "users_path": {"type": "string", "title": "Users Path", "default": "/users"},
                    "timeout": {
                        "type": "number",
                        "title": "Timeout (seconds)",
                        "default": 30,
                        "minimum": 1,
                    },
                    "verify_ssl": {"type": "boolean", "title": "Verify SSL", "default": True},
                },
                "required": ["base_url", "api_key"],
            },
        )
        self._transport = transport

    def required_config_fields(self) -> List[str]:
        return ["base_url", "api_key"]

    def validate_config(self, config: Dict[str, Any]) -> bool:
        if not super().validate_config(config):
            return False
        return str(config["base_url"]).startswith(("http://", "https://"))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=str(self._config["base_url"]).rstrip("/"),
            headers={
                "Authorization": f"Bearer {self._config['api_key']}",
                "Accept": "application/json",
            },
            timeout=float(self._config.get("timeout", 30)),
            verify=bool(self._config.get("verify_ssl", True)),
            transport=self._transport,
        )

    @property
    def _users_path(self) -> str:
        return "/" + str(self._config.get("users_path", "/users")).strip("/")

    @staticmethod
    def _to_account(payload: Dict[str, Any]) -> RemoteAccount:
        known = {"id", "email", "username", "display_name", "status"}
        return RemoteAccount(
            id=str(payload["id"]),
            email=payload.get("email", ""),
            username=payload.get("username"),
            display_name=payload.get("display_name") or payload.get("name"),
            status=payload.get("status", "active"),
            metadata={k: v for k, v in payload.items() if k not in known},
        )

    @staticmethod
    def _profile_body(profile: FreelancerProfile) -> Dict[str, Any]:
        return {
            "email": profile.email,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "name": profile.full_name,
            "username": profile.username,
            "phone": profile.phone,
            **profile.extra,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> PlatformResult:
        if not self._initialized:
            return self._not_initialized()
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            return PlatformResult.fail("timeout")
        except httpx.HTTPError as e:
            logger.warning(f"{self.platform_id} {method} {path} failed: {e}")
            return PlatformResult.fail(f"Network error: {e}")

        if response.status_code == 401:
            return PlatformResult.fail("Authentication failed - invalid API key", status_code=401)
        if response.status_code == 403:
            return PlatformResult.fail("Insufficient permissions", status_code=403)
        if response.status_code >= 400:
            return PlatformResult.fail(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return PlatformResult.ok(None)
        try:
            return PlatformResult.ok(response.json())
        except ValueError:
            return PlatformResult.fail("Invalid JSON in platform response")

    async def test_connection(self) -> PlatformResult:
        result = await self._request("GET", self._users_path, params={"limit": 1})
        if not result.success:
            return result
        return PlatformResult.ok({"status": "connected", "base_url": self._config["base_url"]})

    async def create_user(self, profile: FreelancerProfile) -> PlatformResult:
        result = await self._request("POST", self._users_path, json=self._profile_body(profile))
        if not result.success:
            return result
        if not isinstance(result.data, dict) or "id" not in result.data:
            return PlatformResult.fail("Platform did not return an account id")
        payload = {"email": profile.email, **result.data}
        return PlatformResult.ok(self._to_account(payload))

    async def update_user(self, remote_id: str, profile: FreelancerProfile) -> PlatformResult:
        result = await self._request(
            "PATCH", f"{self._users_path}/{remote_id}", json=self._profile_body(profile)
        )
        if not result.success:
            return result
        payload = result.data if isinstance(result.data, dict) else {}
        return PlatformResult.ok(self._to_account({"id": remote_id, "email": profile.email, **payload}))

    async def delete_user(self, remote_id: str) -> PlatformResult:
        result = await self._request("DELETE", f"{self._users_path}/{remote_id}")
        if not result.success:
            return result
        return PlatformResult.ok({"id": remote_id, "deleted": True})

    async def get_user(self, remote_id: str) -> PlatformResult:
        result = await self._request("GET", f"{self._users_path}/{remote_id}")
        if not result.success:
            return result
        return PlatformResult.ok(self._to_account({"id": remote_id, **(result.data or {})}))

    async def list_users(self) -> PlatformResult:
        result = await self._request("GET", self._users_path)
        if not result.success:
            return result
        items = result.data
        if isinstance(items, dict):
            items = items.get("data") or items.get("users") or []
        return PlatformResult.ok([self._to_account(item) for item in items or []])
