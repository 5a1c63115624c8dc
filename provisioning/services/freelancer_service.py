# provisioning/services/freelancer_service.py
"""
Freelancer records.

CRUD for the entity being provisioned. Lookups always go to the store, so a
freelancer created moments ago by another request resolves even if no
in-memory listing has been refreshed.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from ..database.models import (
    Freelancer,
    FreelancerPlatform,
    FreelancerStatus,
    Organization,
    as_uuid,
    utcnow,
)
from ..exceptions import DuplicateFreelancerError, FreelancerNotFoundError
from .change_feed import FREELANCERS_TABLE, ChangeEvent, ChangeFeed
from .database_service import DatabaseService

UPDATABLE_FIELDS = ("email", "first_name", "last_name", "username", "phone", "status", "metadata")


class FreelancerService:
    """Create, read, update and delete freelancers."""

    def __init__(self, db: DatabaseService, feed: ChangeFeed):
        self._db = db
        self._feed = feed
        self._logger = logging.getLogger("provisioning.freelancers")

    async def create_organization(self, name: str, subdomain: str) -> Organization:
        async with self._db.get_session() as session:
            organization = Organization(name=name, subdomain=subdomain)
            session.add(organization)
        self._logger.info(f"Created organization {subdomain} ({organization.id})")
        return organization

    async def create(
        self,
        organization_id: Any,
        data: Dict[str, Any],
        created_by: Optional[str] = None,
    ) -> Freelancer:
        """
        Create a freelancer in pending status.

        Args:
            organization_id: Owning organization
            data: email, first_name, last_name and optional username, phone, metadata
            created_by: User or service creating the record

        Raises:
            DuplicateFreelancerError: If the email is taken within the organization
        """
        now = utcnow()
        freelancer = Freelancer(
            organization_id=as_uuid(organization_id),
            email=data["email"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            username=data.get("username"),
            phone=data.get("phone"),
            metadata_=dict(data.get("metadata") or {}),
            status=FreelancerStatus.PENDING.value,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._db.get_session() as session:
            await self._ensure_unique_email(session, freelancer.organization_id, freelancer.email)
            session.add(freelancer)

        self._logger.info(f"Created freelancer {freelancer.id} ({freelancer.email})")
        await self._publish("insert", freelancer)
        return freelancer

    @staticmethod
    async def _ensure_unique_email(session, organization_id, email: str, exclude: Any = None) -> None:
        query = (
            select(Freelancer.id)
            .where(Freelancer.organization_id == organization_id)
            .where(Freelancer.email == email)
        )
        if exclude is not None:
            query = query.where(Freelancer.id != exclude)
        existing = (await session.execute(query)).first()
        if existing is not None:
            raise DuplicateFreelancerError(f"Freelancer with email {email} already exists")

    async def find(self, freelancer_id: Any) -> Optional[Freelancer]:
        async with self._db.get_session() as session:
            return await session.get(Freelancer, as_uuid(freelancer_id))

    async def get(self, freelancer_id: Any) -> Freelancer:
        """
        Raises:
            FreelancerNotFoundError: If no freelancer has this id
        """
        freelancer = await self.find(freelancer_id)
        if freelancer is None:
            raise FreelancerNotFoundError(f"Freelancer {freelancer_id} not found")
        return freelancer

    async def list_for_org(self, organization_id: Any) -> List[Freelancer]:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(Freelancer)
                .where(Freelancer.organization_id == as_uuid(organization_id))
                .order_by(Freelancer.created_at.desc())
            )
            return list(result.scalars().all())

    async def update(self, freelancer_id: Any, patch: Dict[str, Any]) -> Freelancer:
        async with self._db.get_session() as session:
            freelancer = await session.get(Freelancer, as_uuid(freelancer_id))
            if freelancer is None:
                raise FreelancerNotFoundError(f"Freelancer {freelancer_id} not found")
            if patch.get("email") and patch["email"] != freelancer.email:
                await self._ensure_unique_email(session, freelancer.organization_id, patch["email"], exclude=freelancer.id)
            for field in UPDATABLE_FIELDS:
                if field not in patch:
                    continue
                if field == "metadata":
                    freelancer.metadata_ = dict(patch[field] or {})
                elif field == "status":
                    freelancer.status = FreelancerStatus(patch[field]).value
                else:
                    setattr(freelancer, field, patch[field])
            freelancer.updated_at = utcnow()

        await self._publish("update", freelancer)
        return freelancer

    async def set_status(self, freelancer_id: Any, status: FreelancerStatus) -> Freelancer:
        freelancer = await self.update(freelancer_id, {"status": status})
        self._logger.info(f"Freelancer {freelancer_id} status -> {freelancer.status}")
        return freelancer

    async def delete(self, freelancer_id: Any) -> None:
        """Delete the freelancer row and its association rows."""
        freelancer = await self.get(freelancer_id)
        async with self._db.get_session() as session:
            await session.execute(
                delete(FreelancerPlatform).where(FreelancerPlatform.freelancer_id == freelancer.id)
            )
            await session.execute(delete(Freelancer).where(Freelancer.id == freelancer.id))
        self._logger.info(f"Deleted freelancer {freelancer_id}")
        await self._publish("delete", freelancer)

    async def _publish(self, action: str, freelancer: Freelancer) -> None:
        record = freelancer.to_dict()
        await self._feed.publish(
            ChangeEvent(
                table=FREELANCERS_TABLE,
                action=action,
                organization_id=str(freelancer.organization_id),
                key=str(freelancer.id),
                record=record,
                occurred_at=freelancer.updated_at,
            )
        )
