# provisioning/database/models.py
"""
SQLAlchemy ORM models for freelancer provisioning.

Models:
    - Organization: Tenant that owns freelancers and platform configurations
    - Freelancer: The entity provisioned across platforms
    - PlatformConfiguration: Per-organization enable flag + config blob per platform
    - FreelancerPlatform: Per-(freelancer, platform) association with lifecycle status

All models use UUID primary keys and include timestamps for auditing.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    JSON,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from .base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_uuid(value: Any) -> uuid.UUID:
    """Accept UUIDs or their string form; raises ValueError otherwise."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


# UUID type that works with both SQLite and PostgreSQL
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == 'postgresql' and isinstance(value, uuid.UUID):
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class FreelancerStatus(str, enum.Enum):
    """Lifecycle status of the freelancer record itself."""
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class AssociationStatus(str, enum.Enum):
    """Lifecycle status of one freelancer's account on one platform."""
    PENDING = "pending"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    FAILED = "failed"
    DEACTIVATED = "deactivated"


class Organization(Base):
    """
    Organization (tenant) model.

    Attributes:
        id: Unique organization identifier
        name: Display name
        subdomain: Unique slug used for tenant routing
        is_active: Whether the organization is active
    """

    __tablename__ = "organizations"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, subdomain={self.subdomain})>"


class Freelancer(Base):
    """
    Freelancer model, the entity provisioned across external platforms.

    Attributes:
        id: Unique freelancer identifier
        organization_id: Owning organization
        email: Contact email, unique within the organization
        first_name / last_name: Name parts used to build platform profiles
        username: Optional preferred username on platforms
        phone: Optional phone number
        status: pending, active, inactive or error
        metadata_: Free-form JSON; metadata_[platform_id] holds platform-specific
            profile fields merged into that platform's createUser payload
        created_by: User or service that created the record
    """

    __tablename__ = "freelancers"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_freelancers_org_email"),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    username = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=FreelancerStatus.PENDING.value)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "organization_id": str(self.organization_id),
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "phone": self.phone,
            "status": self.status,
            "metadata": self.metadata_ or {},
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Freelancer(id={self.id}, email={self.email}, status={self.status})>"


class PlatformConfiguration(Base):
    """
    Per-organization configuration of one platform integration.

    A row may exist with is_enabled=False (saved but inactive) or with
    is_enabled=True and an empty config ("enable now, configure later").
    A missing row means the platform was never configured.

    Attributes:
        organization_id: Owning organization
        platform_id: Registry identifier of the platform module
        display_name / category: Copied from module metadata for listings
        config: Opaque JSON credentials/endpoints passed to module.initialize
        is_enabled: Whether freelancers may be provisioned on this platform
    """

    __tablename__ = "platforms"
    __table_args__ = (
        UniqueConstraint("organization_id", "platform_id", name="uq_platforms_org_platform"),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform_id = Column(String(100), nullable=False)
    display_name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, default="platforms")
    config = Column(JSON, nullable=False, default=dict)
    is_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "organization_id": str(self.organization_id),
            "platform_id": self.platform_id,
            "display_name": self.display_name,
            "category": self.category,
            "config": dict(self.config or {}),
            "is_enabled": self.is_enabled,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<PlatformConfiguration(org={self.organization_id}, platform={self.platform_id}, enabled={self.is_enabled})>"


class FreelancerPlatform(Base):
    """
    Association between one freelancer and one platform.

    At most one row exists per (freelancer_id, platform_id). Retries and
    re-enables reuse the row.

    Attributes:
        status: pending, provisioning, active, failed or deactivated
        platform_user_id: Remote account id; authoritative only while active
        error_message: Last provisioning error
        provisioned_at: When the remote account was created
        last_sync_at: Last time the row was reconciled with the platform
        metadata_: Extra data returned by the platform on creation
    """

    __tablename__ = "freelancer_platforms"
    __table_args__ = (
        UniqueConstraint("freelancer_id", "platform_id", name="uq_freelancer_platforms_pair"),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    freelancer_id = Column(
        UUID(), ForeignKey("freelancers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id = Column(UUID(), nullable=False, index=True)
    platform_id = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=AssociationStatus.PENDING.value)
    platform_user_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    provisioned_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "freelancer_id": str(self.freelancer_id),
            "organization_id": str(self.organization_id),
            "platform_id": self.platform_id,
            "status": self.status,
            "platform_user_id": self.platform_user_id,
            "error_message": self.error_message,
            "provisioned_at": self.provisioned_at,
            "last_sync_at": self.last_sync_at,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<FreelancerPlatform(freelancer={self.freelancer_id}, platform={self.platform_id}, status={self.status})>"
