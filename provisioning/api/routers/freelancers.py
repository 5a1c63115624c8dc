# provisioning/api/routers/freelancers.py
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from ...services.container import ServiceContainer
from ..deps import get_services
from ..schemas import (
    AssociationResponse,
    FreelancerCreate,
    FreelancerDetailResponse,
    FreelancerResponse,
    FreelancerUpdate,
    OrganizationCreate,
    OrganizationResponse,
)

router = APIRouter(tags=["Freelancers"])


@router.post("/organizations", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(body: OrganizationCreate, services: ServiceContainer = Depends(get_services)):
    organization = await services.freelancers.create_organization(body.name, body.subdomain)
    return OrganizationResponse(
        id=str(organization.id),
        name=organization.name,
        subdomain=organization.subdomain,
        is_active=organization.is_active,
    )


@router.get("/organizations/{organization_id}/freelancers", response_model=List[FreelancerResponse])
async def list_freelancers(organization_id: UUID, services: ServiceContainer = Depends(get_services)):
    """List an organization's freelancers, newest first."""
    freelancers = await services.freelancers.list_for_org(organization_id)
    return [FreelancerResponse(**f.to_dict()) for f in freelancers]


@router.post("/freelancers", response_model=FreelancerResponse, status_code=status.HTTP_201_CREATED)
async def create_freelancer(body: FreelancerCreate, services: ServiceContainer = Depends(get_services)):
    data = body.model_dump(exclude={"organization_id", "created_by"})
    freelancer = await services.freelancers.create(body.organization_id, data, created_by=body.created_by)
    return FreelancerResponse(**freelancer.to_dict())


@router.get("/freelancers/{freelancer_id}", response_model=FreelancerDetailResponse)
async def get_freelancer(freelancer_id: UUID, services: ServiceContainer = Depends(get_services)):
    """Freelancer with every platform association."""
    freelancer = await services.freelancers.get(freelancer_id)
    associations = await services.associations.list_for_freelancer(freelancer_id)
    return FreelancerDetailResponse(
        **freelancer.to_dict(),
        platforms=[AssociationResponse(**a.to_dict()) for a in associations],
    )


@router.patch("/freelancers/{freelancer_id}", response_model=FreelancerResponse)
async def update_freelancer(
    freelancer_id: UUID,
    body: FreelancerUpdate,
    services: ServiceContainer = Depends(get_services),
):
    freelancer = await services.freelancers.update(freelancer_id, body.model_dump(exclude_unset=True))
    return FreelancerResponse(**freelancer.to_dict())


@router.delete("/freelancers/{freelancer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_freelancer(freelancer_id: UUID, services: ServiceContainer = Depends(get_services)):
    """Deactivate the freelancer on every active platform, then delete the record."""
    await services.onboarding.delete_freelancer(freelancer_id)


@router.get("/freelancers/{freelancer_id}/platforms", response_model=List[AssociationResponse])
async def list_freelancer_platforms(freelancer_id: UUID, services: ServiceContainer = Depends(get_services)):
    """Current platform associations, served from the live status cache."""
    await services.freelancers.get(freelancer_id)
    records = await services.associations.live_for_freelancer(freelancer_id)
    return [AssociationResponse(**record) for record in records]
