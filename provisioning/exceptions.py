"""
Error taxonomy for the provisioning orchestrator.

Three families of failure are distinguished:

    ConfigurationError      platform not enabled, module missing, bad config.
                            Terminal for a batch; recorded per platform.
    RemoteIntegrationError  the external platform refused or failed the call.
                            Recorded per platform; retryable.
    PersistenceError        the record store failed. Aborts the operation for
                            the affected freelancer and propagates.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base class for all provisioning errors."""


class ConfigurationError(ProvisioningError):
    """A platform cannot be used until an operator changes its configuration."""

    def __init__(self, message: str, platform_id: Optional[str] = None):
        super().__init__(message)
        self.platform_id = platform_id


class RemoteIntegrationError(ProvisioningError):
    """An external platform rejected or failed an operation."""

    def __init__(self, message: str, platform_id: Optional[str] = None):
        super().__init__(message)
        self.platform_id = platform_id


class PersistenceError(ProvisioningError):
    """The record store is unavailable or a write could not be confirmed."""


class FreelancerNotFoundError(ProvisioningError, LookupError):
    """No freelancer exists with the requested id."""


class InvalidTransitionError(ProvisioningError):
    """An association was asked to move between incompatible states."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition association from '{current}' to '{target}'")
        self.current = current
        self.target = target


class DuplicateFreelancerError(ProvisioningError):
    """A freelancer with this email already exists in the organization."""
