# provisioning/database/__init__.py
"""
Database package for the provisioning service.

Provides SQLAlchemy models and the declarative base.
"""

from .base import Base
from .models import (
    AssociationStatus,
    Freelancer,
    FreelancerPlatform,
    FreelancerStatus,
    Organization,
    PlatformConfiguration,
)

__all__ = [
    "Base",
    "AssociationStatus",
    "Freelancer",
    "FreelancerPlatform",
    "FreelancerStatus",
    "Organization",
    "PlatformConfiguration",
]
