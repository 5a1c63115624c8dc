# provisioning/services/association_service.py
"""
Freelancer/platform association store.

One FreelancerPlatform row per (freelancer, platform). The row follows this
lifecycle and is reused on retry or re-enable, never duplicated:

    (none)       -> pending | provisioning | failed
    pending      -> provisioning | failed
    provisioning -> active | failed | provisioning   (restart after interruption)
    active       -> deactivated
    failed       -> provisioning | failed
    deactivated  -> provisioning | failed

platform_user_id is set exactly while the row is active. After deactivation it
is kept on the row for audit, and moved to metadata["previous_platform_user_id"]
when the row leaves the deactivated state.

Configuration rejections (platform not enabled, module missing) are recorded
as failed rows, except on rows that are active or provisioning: a remote
account that exists is never marked failed because of a local setting.

Writes to the same pair are serialized in-process, and the
(freelancer_id, platform_id) unique constraint rejects duplicates across
processes; a losing concurrent insert reloads the winner's row.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..database.models import AssociationStatus, FreelancerPlatform, as_uuid, utcnow
from ..exceptions import InvalidTransitionError, PersistenceError
from ..platforms import RemoteAccount
from .change_feed import ASSOCIATIONS_TABLE, ChangeCallback, ChangeEvent, ChangeFeed, Subscription
from .database_service import DatabaseService
from .lock_service import KeyedLockService
from .status_cache import StatusCache

S = AssociationStatus

ALLOWED_TRANSITIONS: Dict[Optional[str], Tuple[str, ...]] = {
    None: (S.PENDING.value, S.PROVISIONING.value, S.FAILED.value),
    S.PENDING.value: (S.PROVISIONING.value, S.FAILED.value),
    S.PROVISIONING.value: (S.ACTIVE.value, S.FAILED.value, S.PROVISIONING.value),
    S.ACTIVE.value: (S.DEACTIVATED.value,),
    S.FAILED.value: (S.PROVISIONING.value, S.FAILED.value),
    S.DEACTIVATED.value: (S.PROVISIONING.value, S.FAILED.value),
}


def can_transition(current: Optional[str], target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


class AssociationService:
    """Persisted per-(freelancer, platform) provisioning state."""

    def __init__(self, db: DatabaseService, feed: ChangeFeed, cache: Optional[StatusCache] = None):
        self._db = db
        self._feed = feed
        self._cache = cache if cache is not None else StatusCache()
        self._locks = KeyedLockService("associations")
        self._loaded: Set[str] = set()
        self._logger = logging.getLogger("provisioning.associations")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def _get(session, freelancer_id, platform_id: str) -> Optional[FreelancerPlatform]:
        result = await session.execute(
            select(FreelancerPlatform)
            .where(FreelancerPlatform.freelancer_id == freelancer_id)
            .where(FreelancerPlatform.platform_id == platform_id)
        )
        return result.scalar_one_or_none()

    async def get(self, freelancer_id: Any, platform_id: str) -> Optional[FreelancerPlatform]:
        async with self._db.get_session() as session:
            return await self._get(session, as_uuid(freelancer_id), platform_id)

    async def list_for_freelancer(self, freelancer_id: Any) -> List[FreelancerPlatform]:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(FreelancerPlatform)
                .where(FreelancerPlatform.freelancer_id == as_uuid(freelancer_id))
                .order_by(FreelancerPlatform.platform_id)
            )
            return list(result.scalars().all())

    async def list_for_org(self, organization_id: Any) -> List[FreelancerPlatform]:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(FreelancerPlatform)
                .where(FreelancerPlatform.organization_id == as_uuid(organization_id))
                .order_by(FreelancerPlatform.freelancer_id, FreelancerPlatform.platform_id)
            )
            return list(result.scalars().all())

    async def live_for_freelancer(self, freelancer_id: Any) -> List[Dict[str, Any]]:
        """
        Association records of a freelancer as this process currently sees them.

        Served from the status cache. The first read for a freelancer loads the
        rows from the store and seeds the cache; after that the cache is kept
        current by local writes and by notifications merged from the feed.
        """
        fid = str(as_uuid(freelancer_id))
        if fid not in self._loaded:
            for row in await self.list_for_freelancer(fid):
                self._cache.seed(ASSOCIATIONS_TABLE, row.to_dict())
            self._loaded.add(fid)
        return sorted(self._cache.associations_for(fid), key=lambda record: record["platform_id"])

    def forget(self, freelancer_id: Any) -> None:
        """Drop cached associations of a deleted freelancer."""
        fid = str(as_uuid(freelancer_id))
        self._loaded.discard(fid)
        self._cache.forget_associations(fid)

    def subscribe(self, organization_id: Any, callback: ChangeCallback) -> Subscription:
        return self._feed.subscribe(organization_id, callback, table=ASSOCIATIONS_TABLE)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        freelancer_id: Any,
        organization_id: Any,
        platform_id: str,
        target: AssociationStatus,
        create: bool = False,
        **changes: Any,
    ) -> FreelancerPlatform:
        fid = as_uuid(freelancer_id)
        async with self._locks.lock(f"{fid}:{platform_id}"):
            try:
                row, action = await self._apply(fid, organization_id, platform_id, target, create, changes)
            except PersistenceError as e:
                if not create or not isinstance(e.__cause__, IntegrityError):
                    raise
                self._logger.info(f"Association {fid}:{platform_id} created concurrently, reloading")
                row, action = await self._apply(fid, organization_id, platform_id, target, False, changes)

        record = row.to_dict()
        self._cache.apply_local(ASSOCIATIONS_TABLE, record)
        await self._feed.publish(
            ChangeEvent(
                table=ASSOCIATIONS_TABLE,
                action=action,
                organization_id=str(row.organization_id),
                key=f"{row.freelancer_id}:{row.platform_id}",
                record=record,
                occurred_at=row.updated_at,
            )
        )
        return row

    async def _apply(self, fid, organization_id, platform_id, target, create, changes):
        async with self._db.get_session() as session:
            row = await self._get(session, fid, platform_id)
            action = "update"
            current = row.status if row is not None else None

            if not can_transition(current, target.value):
                raise InvalidTransitionError(current or "none", target.value)

            if row is None:
                if not create:
                    raise InvalidTransitionError("none", target.value)
                now = utcnow()
                row = FreelancerPlatform(
                    freelancer_id=fid,
                    organization_id=as_uuid(organization_id),
                    platform_id=platform_id,
                    metadata_={},
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                action = "insert"

            if row.platform_user_id and target not in (S.ACTIVE, S.DEACTIVATED):
                row.metadata_ = {**(row.metadata_ or {}), "previous_platform_user_id": row.platform_user_id}
                row.platform_user_id = None

            row.status = target.value
            for attr, value in changes.items():
                if attr == "metadata_":
                    value = {**(row.metadata_ or {}), **value}
                setattr(row, attr, value)
            row.updated_at = utcnow()

        self._logger.info(f"Association {fid}:{platform_id} {current or 'none'} -> {target.value}")
        return row, action

    async def create_pending(self, freelancer_id: Any, organization_id: Any, platform_id: str) -> FreelancerPlatform:
        """Record an accepted request that will be provisioned later."""
        return await self._transition(freelancer_id, organization_id, platform_id, S.PENDING, create=True)

    async def begin_provisioning(
        self, freelancer_id: Any, organization_id: Any, platform_id: str
    ) -> FreelancerPlatform:
        """Create or reuse the row for this pair and move it to provisioning."""
        return await self._transition(
            freelancer_id, organization_id, platform_id, S.PROVISIONING,
            create=True, error_message=None,
        )

    async def mark_active(
        self, freelancer_id: Any, organization_id: Any, platform_id: str, account: RemoteAccount
    ) -> FreelancerPlatform:
        now = utcnow()
        return await self._transition(
            freelancer_id, organization_id, platform_id, S.ACTIVE,
            platform_user_id=account.id,
            provisioned_at=now,
            last_sync_at=now,
            error_message=None,
            metadata_={"remote_account": account.model_dump(mode="json")},
        )

    async def mark_failed(
        self, freelancer_id: Any, organization_id: Any, platform_id: str, error: str
    ) -> FreelancerPlatform:
        return await self._transition(
            freelancer_id, organization_id, platform_id, S.FAILED,
            create=True, error_message=error, platform_user_id=None,
        )

    async def mark_deactivated(
        self, freelancer_id: Any, organization_id: Any, platform_id: str
    ) -> FreelancerPlatform:
        return await self._transition(
            freelancer_id, organization_id, platform_id, S.DEACTIVATED,
            last_sync_at=utcnow(),
        )
