# provisioning/api/routers/platforms.py
"""
Platform registry listing and per-organization platform configuration.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from ...services.connection_tester import ConnectionTestResult
from ...services.container import ServiceContainer
from ...services.platform_config_service import PlatformStatus
from ..deps import get_services
from ..schemas import (
    ConnectionTestRequest,
    PlatformBulkToggleRequest,
    PlatformConfigResponse,
    PlatformConfigUpsert,
)

router = APIRouter(tags=["Platforms"])


@router.get("/platforms/types")
async def list_platform_types(services: ServiceContainer = Depends(get_services)) -> List[Dict[str, Any]]:
    """Every registered platform module with its metadata and required config fields."""
    return services.registry.list_types()


@router.get("/organizations/{organization_id}/platforms", response_model=List[PlatformConfigResponse])
async def list_platform_configs(organization_id: UUID, services: ServiceContainer = Depends(get_services)):
    rows = await services.configs.list_for_org(organization_id)
    return [PlatformConfigResponse.from_row(row) for row in rows]


@router.get("/organizations/{organization_id}/platforms/{platform_id}", response_model=PlatformConfigResponse)
async def get_platform_config(
    organization_id: UUID, platform_id: str, services: ServiceContainer = Depends(get_services)
):
    row = await services.configs.get(organization_id, platform_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{platform_id} is not configured")
    return PlatformConfigResponse.from_row(row)


@router.put("/organizations/{organization_id}/platforms/{platform_id}", response_model=PlatformConfigResponse)
async def upsert_platform_config(
    organization_id: UUID,
    platform_id: str,
    body: PlatformConfigUpsert,
    services: ServiceContainer = Depends(get_services),
):
    """Save a platform configuration. A non-empty config enables the platform unless is_enabled=false is sent."""
    if services.registry.get(platform_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform_id}")
    row = await services.configs.upsert(organization_id, platform_id, body.model_dump(exclude_unset=True))
    return PlatformConfigResponse.from_row(row)


@router.post("/organizations/{organization_id}/platforms/{platform_id}/enable", response_model=PlatformConfigResponse)
async def enable_platform(organization_id: UUID, platform_id: str, services: ServiceContainer = Depends(get_services)):
    row = await services.configs.set_enabled(organization_id, platform_id, True)
    return PlatformConfigResponse.from_row(row)


@router.post(
    "/organizations/{organization_id}/platforms/{platform_id}/disable",
    response_model=Optional[PlatformConfigResponse],
)
async def disable_platform(organization_id: UUID, platform_id: str, services: ServiceContainer = Depends(get_services)):
    """Disable a platform; returns null if it was never configured."""
    row = await services.configs.set_enabled(organization_id, platform_id, False)
    return PlatformConfigResponse.from_row(row) if row is not None else None


@router.post("/organizations/{organization_id}/platforms/enable", response_model=List[PlatformConfigResponse])
async def enable_platforms(
    organization_id: UUID, body: PlatformBulkToggleRequest, services: ServiceContainer = Depends(get_services)
):
    rows = await services.configs.enable_many(organization_id, body.platform_ids)
    return [PlatformConfigResponse.from_row(row) for row in rows]


@router.post("/organizations/{organization_id}/platforms/disable", response_model=List[PlatformConfigResponse])
async def disable_platforms(
    organization_id: UUID, body: PlatformBulkToggleRequest, services: ServiceContainer = Depends(get_services)
):
    rows = await services.configs.disable_many(organization_id, body.platform_ids)
    return [PlatformConfigResponse.from_row(row) for row in rows if row is not None]


@router.post(
    "/organizations/{organization_id}/platforms/{platform_id}/test",
    response_model=ConnectionTestResult,
)
async def test_platform_connection(
    organization_id: UUID,
    platform_id: str,
    body: Optional[ConnectionTestRequest] = None,
    services: ServiceContainer = Depends(get_services),
):
    """
    Test a platform connection.

    With a config in the body the draft is tested and nothing is recorded.
    Without one the saved config is tested and the platform status updated.
    """
    if body is not None and body.config is not None:
        return await services.configs.test_draft(platform_id, body.config)
    return await services.configs.test_saved(organization_id, platform_id)


@router.post(
    "/organizations/{organization_id}/platforms/test-all",
    response_model=Dict[str, ConnectionTestResult],
)
async def test_all_platforms(organization_id: UUID, services: ServiceContainer = Depends(get_services)):
    return await services.configs.test_all(organization_id)


@router.get("/organizations/{organization_id}/platforms/{platform_id}/status", response_model=PlatformStatus)
async def get_platform_status(
    organization_id: UUID, platform_id: str, services: ServiceContainer = Depends(get_services)
):
    return services.configs.get_status(organization_id, platform_id)
