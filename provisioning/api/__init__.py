from fastapi import APIRouter

# Aggregate all v1 routers here
from .routers import bulk, events, freelancers, onboarding, platforms, system

api_router = APIRouter()
api_router.include_router(system.router)
api_router.include_router(freelancers.router)
api_router.include_router(onboarding.router)
api_router.include_router(platforms.router)
api_router.include_router(bulk.router)
api_router.include_router(events.router)

__all__ = ["api_router"]
