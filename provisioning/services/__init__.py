"""Services package for freelancer provisioning."""

from .association_service import AssociationService
from .bulk_service import BulkItemResult, BulkOperationService, BulkResult
from .change_feed import ChangeEvent, ChangeFeed, Subscription
from .connection_tester import ConnectionTestResult, ConnectionTester
from .database_service import DatabaseService, database_service
from .freelancer_service import FreelancerService
from .lock_service import KeyedLockService
from .onboarding_service import OnboardingProgress, OnboardingService, PlatformError, ProgressStatus
from .platform_config_service import PlatformConfigService, PlatformStatus
from .platform_registry import PlatformRegistry, build_default_registry
from .status_cache import StatusCache

__all__ = [
    "AssociationService",
    "BulkItemResult",
    "BulkOperationService",
    "BulkResult",
    "ChangeEvent",
    "ChangeFeed",
    "Subscription",
    "ConnectionTestResult",
    "ConnectionTester",
    "DatabaseService",
    "database_service",
    "FreelancerService",
    "KeyedLockService",
    "OnboardingProgress",
    "OnboardingService",
    "PlatformError",
    "ProgressStatus",
    "PlatformConfigService",
    "PlatformStatus",
    "PlatformRegistry",
    "build_default_registry",
    "StatusCache",
]
