# provisioning/api/routers/onboarding.py
import logging
from typing import List, Union
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from ...exceptions import ProvisioningError
from ...services.container import ServiceContainer
from ...services.onboarding_service import OnboardingProgress, OnboardingService
from ..deps import get_services
from ..schemas import AssociationResponse, OnboardRequest, ToggleRequest

logger = logging.getLogger("provisioning.api.onboarding")

router = APIRouter(prefix="/freelancers/{freelancer_id}", tags=["Onboarding"])


async def _onboard_in_background(engine: OnboardingService, freelancer_id: UUID, platform_ids: List[str]) -> None:
    try:
        await engine.onboard(freelancer_id, platform_ids)
    except ProvisioningError as e:
        logger.error(f"Background onboarding of {freelancer_id} aborted: {e}")


@router.post(
    "/onboard",
    response_model=Union[OnboardingProgress, List[AssociationResponse]],
)
async def onboard(
    freelancer_id: UUID,
    body: OnboardRequest,
    background_tasks: BackgroundTasks,
    services: ServiceContainer = Depends(get_services),
):
    """
    Provision a freelancer on platforms.

    With wait=true (default) the response is the final OnboardingProgress.
    With wait=false pending associations are recorded, provisioning continues
    in the background and the response is 202 with those associations.
    """
    if body.wait:
        return await services.onboarding.onboard(freelancer_id, body.platform_ids)

    accepted = await services.onboarding.accept(freelancer_id, body.platform_ids)
    background_tasks.add_task(_onboard_in_background, services.onboarding, freelancer_id, body.platform_ids)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=[AssociationResponse(**a.to_dict()).model_dump(mode="json") for a in accepted],
        background=background_tasks,
    )


@router.get("/progress", response_model=OnboardingProgress)
async def get_progress(freelancer_id: UUID, services: ServiceContainer = Depends(get_services)):
    progress = services.onboarding.get_progress(freelancer_id)
    if progress is None:
        await services.freelancers.get(freelancer_id)
        raise HTTPException(status_code=404, detail="No onboarding has run for this freelancer")
    return progress


@router.post("/platforms/{platform_id}/toggle", response_model=AssociationResponse)
async def toggle_platform(
    freelancer_id: UUID,
    platform_id: str,
    body: ToggleRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Provision (enabled=true) or deactivate (enabled=false) one platform; repeat calls are no-ops."""
    association = await services.onboarding.retry_or_toggle(freelancer_id, platform_id, body.enabled)
    if association is None:
        await services.freelancers.get(freelancer_id)
        raise HTTPException(status_code=404, detail=f"Freelancer has no association with {platform_id}")
    return AssociationResponse(**association.to_dict())


@router.post("/platforms/{platform_id}/deactivate", response_model=AssociationResponse)
async def deactivate_platform(
    freelancer_id: UUID,
    platform_id: str,
    services: ServiceContainer = Depends(get_services),
):
    association = await services.onboarding.deactivate(freelancer_id, platform_id)
    if association is None:
        await services.freelancers.get(freelancer_id)
        raise HTTPException(status_code=404, detail=f"Freelancer has no association with {platform_id}")
    return AssociationResponse(**association.to_dict())
