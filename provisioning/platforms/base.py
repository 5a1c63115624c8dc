# provisioning/platforms/base.py
"""
Platform module contract.

Every external platform integration implements BasePlatformModule. A module
is identified by a stable id (metadata.id) and exposes the capability set:

    initialize(config)           -> PlatformResult
    test_connection()            -> PlatformResult
    create_user(profile)         -> PlatformResult[RemoteAccount]
    update_user(remote_id, prof) -> PlatformResult[RemoteAccount]
    delete_user(remote_id)       -> PlatformResult
    get_user(remote_id)          -> PlatformResult[RemoteAccount]
    list_users()                 -> PlatformResult[List[RemoteAccount]]
    validate_config(config)      -> bool
    required_config_fields()     -> List[str]

Remote operations return a PlatformResult instead of raising for expected
failures (rejected credentials, duplicate accounts, remote validation).
Modules keep no mutable state across calls beyond what initialize() derives
from its config; callers obtain an isolated copy with fresh() before each
provisioning pass so concurrent batches never share that state.
"""

import copy
import enum
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PlatformCategory(str, enum.Enum):
    FREELANCE_PLATFORMS = "freelance-platforms"
    SCREEN_SHARING = "screen-sharing"
    FILE_SHARING = "file-sharing"
    COLLABORATION = "collaboration"
    COMMUNICATION = "communication"
    PLATFORMS = "platforms"


class PlatformResult(BaseModel, Generic[T]):
    """Outcome of a single platform operation."""

    success: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[T] = Field(None, description="Operation payload")
    error: Optional[str] = Field(None, description="Human-readable error if it failed")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional diagnostics")

    @classmethod
    def ok(cls, data: Any = None, **details: Any) -> "PlatformResult":
        return cls(success=True, data=data, details=details or None)

    @classmethod
    def fail(cls, error: str, **details: Any) -> "PlatformResult":
        return cls(success=False, error=error, details=details or None)


class RemoteAccount(BaseModel):
    """Account/identity held by a freelancer on an external platform."""

    id: str
    email: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    status: str = "active"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FreelancerProfile(BaseModel):
    """Profile sent to a platform when creating or updating an account."""

    email: str
    first_name: str
    last_name: str
    full_name: str
    username: Optional[str] = None
    phone: Optional[str] = None
    extra: Dict[str, Any] = Field(
        default_factory=dict, description="Platform-specific profile fields"
    )

    @classmethod
    def from_freelancer(cls, freelancer: Any, platform_id: str) -> "FreelancerProfile":
        metadata = getattr(freelancer, "metadata_", None) or {}
        extra = metadata.get(platform_id) or {}
        return cls(
            email=freelancer.email,
            first_name=freelancer.first_name,
            last_name=freelancer.last_name,
            full_name=f"{freelancer.first_name} {freelancer.last_name}".strip(),
            username=freelancer.username or freelancer.email,
            phone=freelancer.phone,
            extra=dict(extra) if isinstance(extra, dict) else {},
        )


class PlatformMetadata(BaseModel):
    """Descriptive metadata shown in platform listings and forms."""

    id: str
    name: str
    display_name: str
    description: str = ""
    category: PlatformCategory = PlatformCategory.PLATFORMS
    requires_auth: bool = True
    config_schema: Dict[str, Any] = Field(default_factory=dict)


class BasePlatformModule(ABC):
    """
    Base class for all platform modules.

    Subclasses set `metadata` and implement the remote operations. The default
    validate_config() checks that every required_config_fields() entry is present
    and non-empty, which is what most integrations need.
    """

    metadata: PlatformMetadata

    def __init__(self):
        self._config: Dict[str, Any] = {}
        self._initialized = False

    @property
    def platform_id(self) -> str:
        return self.metadata.id

    @property
    def initialized(self) -> bool:
        return self._initialized

    def fresh(self) -> "BasePlatformModule":
        """Return an uninitialized copy for a single provisioning pass."""
        clone = copy.copy(self)
        clone._config = {}
        clone._initialized = False
        return clone

    @abstractmethod
    def required_config_fields(self) -> List[str]:
        pass

    def validate_config(self, config: Dict[str, Any]) -> bool:
        if not isinstance(config, dict):
            return False
        return all(config.get(field) not in (None, "") for field in self.required_config_fields())

    async def initialize(self, config: Dict[str, Any]) -> PlatformResult:
        if not self.validate_config(config):
            missing = [f for f in self.required_config_fields() if not config.get(f)]
            return PlatformResult.fail(
                f"{self.metadata.display_name} requires {', '.join(missing) or 'a valid configuration'}"
            )
        self._config = dict(config)
        self._initialized = True
        return PlatformResult.ok({"initialized": True})

    def _not_initialized(self) -> PlatformResult:
        return PlatformResult.fail("Platform not initialized")

    @abstractmethod
    async def test_connection(self) -> PlatformResult:
        pass

    @abstractmethod
    async def create_user(self, profile: FreelancerProfile) -> PlatformResult:
        pass

    @abstractmethod
    async def update_user(self, remote_id: str, profile: FreelancerProfile) -> PlatformResult:
        pass

    @abstractmethod
    async def delete_user(self, remote_id: str) -> PlatformResult:
        pass

    @abstractmethod
    async def get_user(self, remote_id: str) -> PlatformResult:
        pass

    @abstractmethod
    async def list_users(self) -> PlatformResult:
        pass

    def describe(self) -> Dict[str, Any]:
        """Registry listing entry for this module."""
        return {
            **self.metadata.model_dump(mode="json"),
            "required_config_fields": self.required_config_fields(),
        }
