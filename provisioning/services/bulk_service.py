# provisioning/services/bulk_service.py
"""
Bulk operations over many freelancers.

Each bulk call applies a single-freelancer operation to every id in the
input, bounded by settings.max_concurrent_entities. A failure for one
freelancer is recorded in its result and never stops the others; the caller
gets one BulkItemResult per input id, in input order.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..database.models import FreelancerStatus
from ..exceptions import (
    ConfigurationError,
    FreelancerNotFoundError,
    PersistenceError,
    RemoteIntegrationError,
)
from .freelancer_service import FreelancerService
from .onboarding_service import OnboardingProgress, OnboardingService

logger = logging.getLogger("provisioning.bulk")


class BulkItemResult(BaseModel):
    """Outcome of a bulk operation for one freelancer."""

    freelancer_id: str
    success: bool
    status: Optional[str] = Field(None, description="Freelancer or batch status after the operation")
    error: Optional[str] = None
    error_type: Optional[str] = Field(
        None, description="not_found, configuration, remote, persistence or unexpected"
    )
    progress: Optional[OnboardingProgress] = None


class BulkResult(BaseModel):
    results: List[BulkItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


def _error_type(error: Exception) -> str:
    if isinstance(error, FreelancerNotFoundError):
        return "not_found"
    if isinstance(error, ConfigurationError):
        return "configuration"
    if isinstance(error, RemoteIntegrationError):
        return "remote"
    if isinstance(error, PersistenceError):
        return "persistence"
    return "unexpected"


class BulkOperationService:
    """Fans freelancer operations out over many ids."""

    def __init__(
        self,
        engine: OnboardingService,
        freelancers: FreelancerService,
        max_concurrency: Optional[int] = None,
    ):
        self._engine = engine
        self._freelancers = freelancers
        self._max_concurrency = max_concurrency

    @property
    def max_concurrency(self) -> int:
        return max(1, self._max_concurrency or settings.max_concurrent_entities)

    async def bulk_onboard(self, freelancer_ids: List[Any], platform_ids: List[str]) -> BulkResult:
        async def onboard_one(freelancer_id: Any) -> BulkItemResult:
            progress = await self._engine.onboard(freelancer_id, platform_ids)
            return BulkItemResult(
                freelancer_id=str(freelancer_id),
                success=progress.failed_platforms == 0,
                status=progress.status.value,
                error="; ".join(f"{e.platform}: {e.error}" for e in progress.errors) or None,
                progress=progress,
            )

        return await self._fan_out("onboard", freelancer_ids, onboard_one)

    async def bulk_deactivate_entities(self, freelancer_ids: List[Any]) -> BulkResult:
        """Mark freelancers inactive; platform associations are left untouched."""
        return await self._set_status("deactivate", freelancer_ids, FreelancerStatus.INACTIVE)

    async def bulk_reactivate_entities(self, freelancer_ids: List[Any]) -> BulkResult:
        return await self._set_status("reactivate", freelancer_ids, FreelancerStatus.ACTIVE)

    async def _set_status(self, name: str, freelancer_ids: List[Any], status: FreelancerStatus) -> BulkResult:
        async def apply(freelancer_id: Any) -> BulkItemResult:
            freelancer = await self._freelancers.set_status(freelancer_id, status)
            return BulkItemResult(freelancer_id=str(freelancer_id), success=True, status=freelancer.status)

        return await self._fan_out(name, freelancer_ids, apply)

    async def _fan_out(
        self,
        name: str,
        freelancer_ids: List[Any],
        operation: Callable[[Any], Awaitable[BulkItemResult]],
    ) -> BulkResult:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(freelancer_id: Any) -> BulkItemResult:
            async with semaphore:
                try:
                    return await operation(freelancer_id)
                except Exception as e:
                    if isinstance(e, (FreelancerNotFoundError, ConfigurationError, RemoteIntegrationError)):
                        logger.warning(f"Bulk {name} failed for {freelancer_id}: {e}")
                    else:
                        logger.exception(f"Bulk {name} failed for {freelancer_id}")
                    return BulkItemResult(
                        freelancer_id=str(freelancer_id),
                        success=False,
                        error=str(e) or type(e).__name__,
                        error_type=_error_type(e),
                    )

        results = await asyncio.gather(*(run(fid) for fid in freelancer_ids))
        result = BulkResult(results=list(results))
        logger.info(
            f"Bulk {name} over {len(freelancer_ids)} freelancers: "
            f"{result.succeeded} succeeded, {result.failed} failed"
        )
        return result
