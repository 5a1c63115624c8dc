# provisioning/services/platform_registry.py
"""
Platform module registry.

Holds every known platform module keyed by platform id. Modules are
registered once during startup, after which the registry is frozen and only
read. Looking up an unknown id returns None: a configuration may still
reference a platform that was removed from the build, and callers treat that
as an ordinary, checked condition.

Usage:
    registry = build_default_registry()
    module = registry.get("amove")
    if module is None:
        ...
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional

from ..platforms import (
    BasePlatformModule,
    FiverrModule,
    RestPlatformModule,
    amove_module,
    freelancer_com_module,
    monday_module,
    parsec_module,
    upwork_module,
)


class PlatformRegistry:
    """Registry for platform modules."""

    def __init__(self, modules: Optional[Iterable[BasePlatformModule]] = None):
        self._modules: Dict[str, BasePlatformModule] = {}
        self._frozen = False
        self._logger = logging.getLogger("provisioning.platform_registry")
        for module in modules or ():
            self.register(module)

    def register(self, module: BasePlatformModule) -> None:
        """
        Register a platform module.

        Args:
            module: Module instance to register

        Raises:
            RuntimeError: If the registry has been frozen
        """
        if self._frozen:
            raise RuntimeError("Platform registry is frozen; register modules at startup")

        platform_id = module.platform_id
        if platform_id in self._modules:
            self._logger.warning(f"Platform '{platform_id}' already registered, overwriting")

        self._modules[platform_id] = module
        self._logger.info(f"Registered platform module: {platform_id}")

    def freeze(self) -> "PlatformRegistry":
        """Stop accepting registrations; lookups stay available."""
        self._frozen = True
        self._modules = MappingProxyType(dict(self._modules))
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, platform_id: str) -> Optional[BasePlatformModule]:
        return self._modules.get(platform_id)

    def all(self) -> List[BasePlatformModule]:
        return list(self._modules.values())

    def ids(self) -> List[str]:
        return list(self._modules.keys())

    def __contains__(self, platform_id: str) -> bool:
        return platform_id in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def list_types(self) -> List[Dict[str, Any]]:
        """Metadata of every registered module, for listings and form generation."""
        return [module.describe() for module in self._modules.values()]


def build_default_registry() -> PlatformRegistry:
    """Construct and freeze the registry with the built-in modules."""
    registry = PlatformRegistry(
        [
            amove_module(),
            upwork_module(),
            freelancer_com_module(),
            parsec_module(),
            monday_module(),
            FiverrModule(),
            RestPlatformModule(),
        ]
    )
    return registry.freeze()
