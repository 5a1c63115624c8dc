# provisioning/services/onboarding_service.py
"""
Onboarding workflow engine.

Provisions one freelancer on a list of platforms and reports progress as it
goes. For each platform:

    1. Resolve the freelancer from the store
    2. Require an enabled configuration         -> "platform not enabled"
    3. Require a registered module              -> "platform module not found"
    4. Require a usable configuration           -> "platform not configured" / validation error
    5. Skip platforms whose association is already active
    6. Create or reuse the association, set provisioning
    7. module.initialize(config)                -> failed on error
    8. module.create_user(profile)              -> active or failed
    9. Update OnboardingProgress

Steps 2-4 are configuration errors: recorded for the platform, never raised
out of the batch. Remote failures, including timeouts, mark the association
failed. Persistence errors abort the batch and propagate.

At most one batch runs per freelancer at a time; different freelancers run
concurrently. Within a batch, platforms are provisioned by a bounded pool of
settings.max_concurrent_platforms workers (1 = sequential). Each worker
returns its outcome and only the coordinating coroutine updates the
progress counters, so they never decrease and the final aggregate does not
depend on completion order.

If the batch is cancelled, an association whose remote call was in flight
stays in provisioning: the remote outcome is unknown and the pair can be
retried.

Usage:
    engine = OnboardingService(freelancers, configs, associations, registry, feed)
    progress = await engine.onboard(freelancer_id, ["amove", "upwork"])
    if progress.status == "failed":
        for entry in progress.errors:
            print(entry.platform, entry.error)
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..database.models import (
    AssociationStatus,
    Freelancer,
    FreelancerPlatform,
    FreelancerStatus,
    as_uuid,
    utcnow,
)
from ..exceptions import ConfigurationError, RemoteIntegrationError
from ..platforms import BasePlatformModule, FreelancerProfile, PlatformResult, RemoteAccount
from .association_service import AssociationService
from .change_feed import PROGRESS_TABLE, ChangeEvent, ChangeFeed
from .connection_tester import ConnectionTester
from .freelancer_service import FreelancerService
from .lock_service import KeyedLockService
from .platform_config_service import PlatformConfigService
from .platform_registry import PlatformRegistry

logger = logging.getLogger("provisioning.onboarding")

NOT_ENABLED = "platform not enabled"
MODULE_NOT_FOUND = "platform module not found"
NOT_CONFIGURED = "platform not configured"
TIMEOUT = "timeout"


class ProgressStatus(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PlatformError(BaseModel):
    platform: str
    error: str


class OnboardingProgress(BaseModel):
    """Live and final state of one onboarding batch."""

    freelancer_id: str
    total_platforms: int = 0
    completed_platforms: int = 0
    failed_platforms: int = 0
    current_platform: Optional[str] = None
    status: ProgressStatus = ProgressStatus.IDLE
    errors: List[PlatformError] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def processed_platforms(self) -> int:
        return self.completed_platforms + self.failed_platforms


@dataclass
class PlatformOutcome:
    """What happened to one platform within a batch."""

    platform_id: str
    success: bool
    error: Optional[str] = None
    remote_account_id: Optional[str] = None


class OnboardingService:
    """Provisions freelancers on external platforms."""

    def __init__(
        self,
        freelancers: FreelancerService,
        configs: PlatformConfigService,
        associations: AssociationService,
        registry: PlatformRegistry,
        feed: ChangeFeed,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
    ):
        self._freelancers = freelancers
        self._configs = configs
        self._associations = associations
        self._registry = registry
        self._feed = feed
        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._locks = KeyedLockService("onboarding")
        self._progress: Dict[str, OnboardingProgress] = {}

    @property
    def timeout(self) -> float:
        return self._timeout or settings.platform_call_timeout

    @property
    def max_concurrency(self) -> int:
        return max(1, self._max_concurrency or settings.max_concurrent_platforms)

    def is_running(self, freelancer_id: Any) -> bool:
        return self._locks.is_locked(_key(freelancer_id))

    def get_progress(self, freelancer_id: Any) -> Optional[OnboardingProgress]:
        """Snapshot of the latest batch for a freelancer, or None if none ran."""
        progress = self._progress.get(_key(freelancer_id))
        return progress.model_copy(deep=True) if progress is not None else None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def onboard(self, freelancer_id: Any, platform_ids: List[str]) -> OnboardingProgress:
        """
        Provision a freelancer on the given platforms.

        Args:
            freelancer_id: Freelancer to provision
            platform_ids: Platforms in processing order; duplicates are ignored

        Returns:
            OnboardingProgress: Final state of the batch

        Raises:
            FreelancerNotFoundError: If the freelancer does not exist
            PersistenceError: If the store fails mid-batch
        """
        async with self._locks.lock(_key(freelancer_id)):
            return await self._run_batch(freelancer_id, platform_ids)

    async def accept(self, freelancer_id: Any, platform_ids: List[str]) -> List[FreelancerPlatform]:
        """
        Record pending associations for a request that will be provisioned later.

        Platforms that already have an association are left as they are. Runs
        under the freelancer's lock, so it waits for a batch in progress.
        """
        async with self._locks.lock(_key(freelancer_id)):
            freelancer = await self._freelancers.get(freelancer_id)
            accepted = []
            for platform_id in _unique(platform_ids):
                existing = await self._associations.get(freelancer.id, platform_id)
                if existing is None:
                    existing = await self._associations.create_pending(
                        freelancer.id, freelancer.organization_id, platform_id
                    )
                accepted.append(existing)
            return accepted

    async def deactivate(self, freelancer_id: Any, platform_id: str) -> Optional[FreelancerPlatform]:
        """
        Remove a freelancer's account from a platform.

        A no-op unless the association is active. If the platform refuses the
        deletion the association stays active and the error is raised.

        Raises:
            ConfigurationError: If the module or its configuration is missing
            RemoteIntegrationError: If the platform failed to delete the account
        """
        async with self._locks.lock(_key(freelancer_id)):
            return await self._deactivate(freelancer_id, platform_id)

    async def retry_or_toggle(
        self, freelancer_id: Any, platform_id: str, desired_enabled: bool
    ) -> Optional[FreelancerPlatform]:
        """
        Move a freelancer's platform access toward the desired state.

        desired_enabled=True provisions again when there is no association or
        it is failed/deactivated. desired_enabled=False deactivates an active
        association. Every other combination is a no-op, so repeating a call
        issues no further remote calls.

        Returns:
            The association after the call, or None if none exists
        """
        async with self._locks.lock(_key(freelancer_id)):
            association = await self._associations.get(freelancer_id, platform_id)
            current = association.status if association is not None else None

            if desired_enabled and current in (
                None, AssociationStatus.FAILED.value, AssociationStatus.DEACTIVATED.value,
            ):
                logger.info(f"Re-provisioning {platform_id} for freelancer {freelancer_id} (was {current or 'none'})")
                await self._run_batch(freelancer_id, [platform_id])
            elif not desired_enabled and current == AssociationStatus.ACTIVE.value:
                await self._deactivate(freelancer_id, platform_id)
            else:
                logger.info(
                    f"Toggle {platform_id} -> {'on' if desired_enabled else 'off'} for freelancer "
                    f"{freelancer_id} is a no-op (status {current or 'none'})"
                )
                return association

            return await self._associations.get(freelancer_id, platform_id)

    async def delete_freelancer(self, freelancer_id: Any) -> None:
        """
        Deactivate every active association, then delete the freelancer.

        Raises:
            RemoteIntegrationError: If a platform refused to delete an account;
                the freelancer is kept in that case
        """
        async with self._locks.lock(_key(freelancer_id)):
            freelancer = await self._freelancers.get(freelancer_id)
            for association in await self._associations.list_for_freelancer(freelancer.id):
                if association.status == AssociationStatus.ACTIVE.value:
                    await self._deactivate(freelancer.id, association.platform_id)
            await self._freelancers.delete(freelancer.id)
            self._associations.forget(freelancer.id)
            self._progress.pop(str(freelancer.id), None)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def _run_batch(self, freelancer_id: Any, platform_ids: List[str]) -> OnboardingProgress:
        freelancer = await self._freelancers.get(freelancer_id)
        platform_ids = _unique(platform_ids)

        progress = OnboardingProgress(
            freelancer_id=str(freelancer.id),
            total_platforms=len(platform_ids),
            status=ProgressStatus.PROCESSING,
            started_at=utcnow(),
        )
        self._progress[progress.freelancer_id] = progress
        logger.info(f"Onboarding freelancer {freelancer.id} on {platform_ids}")
        await self._publish_progress(freelancer, progress)

        outcomes: Dict[str, PlatformOutcome] = {}
        try:
            if self.max_concurrency == 1 or len(platform_ids) <= 1:
                for platform_id in platform_ids:
                    progress.current_platform = platform_id
                    await self._publish_progress(freelancer, progress)
                    outcome = await self._provision(freelancer, platform_id)
                    await self._record(freelancer, progress, outcomes, outcome)
            else:
                await self._run_pool(freelancer, platform_ids, progress, outcomes)

            if platform_ids:
                status = FreelancerStatus.ACTIVE if progress.completed_platforms > 0 else FreelancerStatus.ERROR
                await self._freelancers.set_status(freelancer.id, status)
        except BaseException:
            # Persistence error or cancellation: the stored progress must not stay "processing"
            progress.current_platform = None
            progress.status = ProgressStatus.FAILED
            progress.finished_at = utcnow()
            logger.error(
                f"Onboarding freelancer {freelancer.id} aborted after "
                f"{progress.processed_platforms} of {progress.total_platforms} platforms"
            )
            raise

        # Final error list follows the requested order, not completion order
        progress.errors = [
            PlatformError(platform=pid, error=outcomes[pid].error or "Unknown error")
            for pid in platform_ids
            if not outcomes[pid].success
        ]
        progress.current_platform = None
        progress.status = ProgressStatus.COMPLETED if progress.failed_platforms == 0 else ProgressStatus.FAILED
        progress.finished_at = utcnow()

        logger.info(
            f"Onboarding freelancer {freelancer.id} finished: {progress.completed_platforms} completed, "
            f"{progress.failed_platforms} failed"
        )
        await self._publish_progress(freelancer, progress)
        return progress.model_copy(deep=True)

    async def _run_pool(
        self,
        freelancer: Freelancer,
        platform_ids: List[str],
        progress: OnboardingProgress,
        outcomes: Dict[str, PlatformOutcome],
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def worker(platform_id: str) -> PlatformOutcome:
            async with semaphore:
                progress.current_platform = platform_id
                return await self._provision(freelancer, platform_id)

        tasks = [asyncio.create_task(worker(pid)) for pid in platform_ids]
        try:
            for finished in asyncio.as_completed(tasks):
                outcome = await finished
                await self._record(freelancer, progress, outcomes, outcome)
        except BaseException:
            # A persistence error or cancellation ends the batch; stop the rest
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _record(
        self,
        freelancer: Freelancer,
        progress: OnboardingProgress,
        outcomes: Dict[str, PlatformOutcome],
        outcome: PlatformOutcome,
    ) -> None:
        outcomes[outcome.platform_id] = outcome
        if outcome.success:
            progress.completed_platforms += 1
        else:
            progress.failed_platforms += 1
            progress.errors.append(PlatformError(platform=outcome.platform_id, error=outcome.error or "Unknown error"))
        await self._publish_progress(freelancer, progress)

    # ------------------------------------------------------------------
    # Single platform
    # ------------------------------------------------------------------

    async def _provision(self, freelancer: Freelancer, platform_id: str) -> PlatformOutcome:
        try:
            module, config = await self._resolve(freelancer.organization_id, platform_id)
        except ConfigurationError as e:
            logger.warning(f"Skipping {platform_id} for freelancer {freelancer.id}: {e}")
            await self._reject(freelancer, platform_id, str(e))
            return PlatformOutcome(platform_id, success=False, error=str(e))

        existing = await self._associations.get(freelancer.id, platform_id)
        if existing is not None and existing.status == AssociationStatus.ACTIVE.value:
            logger.info(f"Freelancer {freelancer.id} already active on {platform_id}, skipping")
            return PlatformOutcome(platform_id, success=True, remote_account_id=existing.platform_user_id)

        await self._associations.begin_provisioning(freelancer.id, freelancer.organization_id, platform_id)

        instance = module.fresh()
        result = await self._call(platform_id, "initialize", instance.initialize(dict(config)))
        if result.success:
            profile = FreelancerProfile.from_freelancer(freelancer, platform_id)
            result = await self._call(platform_id, "create_user", instance.create_user(profile))

        account = _as_account(result.data) if result.success else None
        if account is None:
            error = result.error or (
                "Platform returned no account" if result.success else "Unknown error"
            )
            logger.warning(f"Provisioning {platform_id} for freelancer {freelancer.id} failed: {error}")
            await self._associations.mark_failed(freelancer.id, freelancer.organization_id, platform_id, error)
            return PlatformOutcome(platform_id, success=False, error=error)

        await self._associations.mark_active(freelancer.id, freelancer.organization_id, platform_id, account)
        logger.info(f"Provisioned freelancer {freelancer.id} on {platform_id} as {account.id}")
        return PlatformOutcome(platform_id, success=True, remote_account_id=account.id)

    async def _resolve(self, organization_id: Any, platform_id: str):
        configuration = await self._configs.get(organization_id, platform_id)
        if configuration is None or not configuration.is_enabled:
            raise ConfigurationError(NOT_ENABLED, platform_id)

        module = self._registry.get(platform_id)
        if module is None:
            raise ConfigurationError(MODULE_NOT_FOUND, platform_id)

        config = configuration.config or {}
        if not config:
            raise ConfigurationError(NOT_CONFIGURED, platform_id)
        if not module.validate_config(config):
            missing = ConnectionTester.missing_fields(module, config)
            message = (
                f"Missing required fields: {', '.join(missing)}" if missing
                else f"Invalid {module.metadata.display_name} configuration"
            )
            raise ConfigurationError(message, platform_id)
        return module, config

    async def _reject(self, freelancer: Freelancer, platform_id: str, error: str) -> None:
        existing = await self._associations.get(freelancer.id, platform_id)
        if existing is not None and existing.status in (
            AssociationStatus.ACTIVE.value, AssociationStatus.PROVISIONING.value,
        ):
            return
        await self._associations.mark_failed(freelancer.id, freelancer.organization_id, platform_id, error)

    async def _call(self, platform_id: str, operation: str, call: Awaitable[PlatformResult]) -> PlatformResult:
        """Await a module call with the per-call timeout; unexpected errors become failures."""
        try:
            return await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{platform_id}.{operation} timed out after {self.timeout}s")
            return PlatformResult.fail(TIMEOUT)
        except Exception as e:
            logger.warning(f"{platform_id}.{operation} raised {type(e).__name__}: {e}")
            return PlatformResult.fail(str(e) or type(e).__name__)

    # ------------------------------------------------------------------
    # Deactivation
    # ------------------------------------------------------------------

    async def _deactivate(self, freelancer_id: Any, platform_id: str) -> Optional[FreelancerPlatform]:
        association = await self._associations.get(freelancer_id, platform_id)
        if association is None or association.status != AssociationStatus.ACTIVE.value:
            logger.info(
                f"Deactivate {platform_id} for freelancer {freelancer_id} is a no-op "
                f"(status {association.status if association else 'none'})"
            )
            return association

        module = self._registry.get(platform_id)
        if module is None:
            raise ConfigurationError(MODULE_NOT_FOUND, platform_id)
        configuration = await self._configs.get(association.organization_id, platform_id)
        if configuration is None or not configuration.config:
            raise ConfigurationError(NOT_CONFIGURED, platform_id)

        instance: BasePlatformModule = module.fresh()
        result = await self._call(platform_id, "initialize", instance.initialize(dict(configuration.config)))
        if result.success and association.platform_user_id:
            result = await self._call(platform_id, "delete_user", instance.delete_user(association.platform_user_id))
        if not result.success:
            error = result.error or "Failed to delete user from platform"
            logger.warning(f"Deactivating {platform_id} for freelancer {freelancer_id} failed: {error}")
            raise RemoteIntegrationError(error, platform_id)

        logger.info(f"Deactivated freelancer {freelancer_id} on {platform_id}")
        return await self._associations.mark_deactivated(
            association.freelancer_id, association.organization_id, platform_id
        )

    async def _publish_progress(self, freelancer: Freelancer, progress: OnboardingProgress) -> None:
        await self._feed.publish(
            ChangeEvent(
                table=PROGRESS_TABLE,
                action="update",
                organization_id=str(freelancer.organization_id),
                key=progress.freelancer_id,
                record=progress.model_dump(mode="json"),
            )
        )


def _key(freelancer_id: Any) -> str:
    """Canonical form of a freelancer id, shared by locks and progress slots."""
    return str(as_uuid(freelancer_id))


def _unique(platform_ids: List[str]) -> List[str]:
    return list(dict.fromkeys(platform_ids))


def _as_account(data: Any) -> Optional[RemoteAccount]:
    if isinstance(data, RemoteAccount):
        return data
    if isinstance(data, dict) and data.get("id"):
        return RemoteAccount(
            id=str(data["id"]),
            email=data.get("email", ""),
            username=data.get("username"),
            display_name=data.get("display_name"),
            status=data.get("status", "active"),
            metadata={k: v for k, v in data.items() if k not in RemoteAccount.model_fields},
        )
    return None
