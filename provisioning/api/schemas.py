"""
Request and response models for the HTTP API.

Responses are built from the ORM rows' to_dict() output, so ids are strings
and timestamps serialize as ISO 8601.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..database.models import FreelancerStatus
from ..services.platform_config_service import public_record


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Organizations & freelancers
# ---------------------------------------------------------------------------

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subdomain: str = Field(..., min_length=1, max_length=100)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    subdomain: str
    is_active: bool


class FreelancerCreate(BaseModel):
    organization_id: UUID
    email: str = Field(..., min_length=3, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    username: Optional[str] = None
    phone: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form data; metadata[platform_id] is sent to that platform on creation",
    )
    created_by: Optional[str] = None


class FreelancerUpdate(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[FreelancerStatus] = None
    metadata: Optional[Dict[str, Any]] = None


class FreelancerResponse(BaseModel):
    id: str
    organization_id: str
    email: str
    first_name: str
    last_name: str
    username: Optional[str] = None
    phone: Optional[str] = None
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AssociationResponse(BaseModel):
    id: str
    freelancer_id: str
    organization_id: str
    platform_id: str
    status: str
    platform_user_id: Optional[str] = None
    error_message: Optional[str] = None
    provisioned_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class FreelancerDetailResponse(FreelancerResponse):
    platforms: List[AssociationResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

class OnboardRequest(BaseModel):
    platform_ids: List[str] = Field(..., min_length=1)
    wait: bool = Field(
        default=True,
        description="Provision before responding; when false the request is accepted and runs in the background",
    )


class ToggleRequest(BaseModel):
    enabled: bool


class BulkOnboardRequest(BaseModel):
    freelancer_ids: List[UUID] = Field(..., min_length=1)
    platform_ids: List[str] = Field(..., min_length=1)


class BulkFreelancersRequest(BaseModel):
    freelancer_ids: List[UUID] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Platform configuration
# ---------------------------------------------------------------------------

class PlatformConfigUpsert(BaseModel):
    config: Optional[Dict[str, Any]] = None
    is_enabled: Optional[bool] = None
    display_name: Optional[str] = None
    category: Optional[str] = None


class PlatformConfigResponse(BaseModel):
    id: str
    organization_id: str
    platform_id: str
    display_name: str
    category: str
    is_enabled: bool
    configured: bool = Field(..., description="False for an enabled platform with an empty config")
    config_fields: List[str] = Field(default_factory=list, description="Keys present in the stored config")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "PlatformConfigResponse":
        record = public_record(row)
        config_fields = record.pop("config_keys")
        return cls(**record, config_fields=config_fields)


class PlatformBulkToggleRequest(BaseModel):
    platform_ids: List[str] = Field(..., min_length=1)


class ConnectionTestRequest(BaseModel):
    config: Optional[Dict[str, Any]] = Field(
        None, description="Draft config to test; omit to test the saved config"
    )
