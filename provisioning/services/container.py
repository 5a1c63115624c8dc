# provisioning/services/container.py
"""
Service wiring.

Builds every service around one DatabaseService, one PlatformRegistry and one
ChangeFeed. The application builds a container at startup and hangs it on
app.state; tests build their own with fake modules and a temporary database.
The status cache is attached to the feed, so changes relayed from other
processes are merged into it alongside local writes.
"""

from dataclasses import dataclass
from typing import Optional

from ..config import settings
from .association_service import AssociationService
from .bulk_service import BulkOperationService
from .change_feed import ChangeFeed
from .connection_tester import ConnectionTester
from .database_service import DatabaseService
from .freelancer_service import FreelancerService
from .onboarding_service import OnboardingService
from .platform_config_service import PlatformConfigService
from .platform_registry import PlatformRegistry, build_default_registry
from .pubsub_service import RedisChangeRelay
from .status_cache import StatusCache


@dataclass
class ServiceContainer:
    db: DatabaseService
    registry: PlatformRegistry
    feed: ChangeFeed
    cache: StatusCache
    tester: ConnectionTester
    freelancers: FreelancerService
    configs: PlatformConfigService
    associations: AssociationService
    onboarding: OnboardingService
    bulk: BulkOperationService
    relay: Optional[RedisChangeRelay] = None

    async def start(self) -> None:
        await self.db.init_db()
        if self.relay is not None:
            await self.relay.start()

    async def stop(self) -> None:
        if self.relay is not None:
            await self.relay.stop()
        await self.db.close()


def build_container(
    db: DatabaseService,
    registry: Optional[PlatformRegistry] = None,
    feed: Optional[ChangeFeed] = None,
    redis_url: Optional[str] = None,
    timeout: Optional[float] = None,
    max_concurrent_platforms: Optional[int] = None,
    max_concurrent_entities: Optional[int] = None,
) -> ServiceContainer:
    registry = registry if registry is not None else build_default_registry()
    feed = feed if feed is not None else ChangeFeed()
    cache = StatusCache()
    cache.attach(feed)
    tester = ConnectionTester(timeout=timeout)

    freelancers = FreelancerService(db, feed)
    configs = PlatformConfigService(db, registry, feed, cache=cache, tester=tester)
    associations = AssociationService(db, feed, cache=cache)
    onboarding = OnboardingService(
        freelancers, configs, associations, registry, feed,
        timeout=timeout, max_concurrency=max_concurrent_platforms,
    )
    bulk = BulkOperationService(onboarding, freelancers, max_concurrency=max_concurrent_entities)

    relay = None
    if redis_url:
        relay = RedisChangeRelay(feed, redis_url, settings.redis_channel_prefix)

    return ServiceContainer(
        db=db,
        registry=registry,
        feed=feed,
        cache=cache,
        tester=tester,
        freelancers=freelancers,
        configs=configs,
        associations=associations,
        onboarding=onboarding,
        bulk=bulk,
        relay=relay,
    )
