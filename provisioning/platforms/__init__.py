# provisioning/platforms/__init__.py
"""
Platform modules: the contract every integration implements, plus the
built-in modules registered at startup.
"""

from .base import (
    BasePlatformModule,
    FreelancerProfile,
    PlatformCategory,
    PlatformMetadata,
    PlatformResult,
    RemoteAccount,
)
from .rest import RestPlatformModule
from .simulated import (
    FiverrModule,
    RemoteDirectory,
    SimulatedPlatformModule,
    amove_module,
    freelancer_com_module,
    monday_module,
    parsec_module,
    upwork_module,
)

__all__ = [
    "BasePlatformModule",
    "FreelancerProfile",
    "PlatformCategory",
    "PlatformMetadata",
    "PlatformResult",
    "RemoteAccount",
    "RestPlatformModule",
    "FiverrModule",
    "RemoteDirectory",
    "SimulatedPlatformModule",
    "amove_module",
    "freelancer_com_module",
    "monday_module",
    "parsec_module",
    "upwork_module",
]
