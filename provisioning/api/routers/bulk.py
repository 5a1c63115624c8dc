# provisioning/api/routers/bulk.py
from fastapi import APIRouter, Depends

from ...services.bulk_service import BulkResult
from ...services.container import ServiceContainer
from ..deps import get_services
from ..schemas import BulkFreelancersRequest, BulkOnboardRequest

router = APIRouter(prefix="/bulk", tags=["Bulk"])


@router.post("/onboard", response_model=BulkResult)
async def bulk_onboard(body: BulkOnboardRequest, services: ServiceContainer = Depends(get_services)):
    """Onboard many freelancers on the same platforms; one result per freelancer."""
    return await services.bulk.bulk_onboard(body.freelancer_ids, body.platform_ids)


@router.post("/deactivate", response_model=BulkResult)
async def bulk_deactivate(body: BulkFreelancersRequest, services: ServiceContainer = Depends(get_services)):
    """Mark freelancers inactive. Platform accounts are not touched."""
    return await services.bulk.bulk_deactivate_entities(body.freelancer_ids)


@router.post("/reactivate", response_model=BulkResult)
async def bulk_reactivate(body: BulkFreelancersRequest, services: ServiceContainer = Depends(get_services)):
    return await services.bulk.bulk_reactivate_entities(body.freelancer_ids)
