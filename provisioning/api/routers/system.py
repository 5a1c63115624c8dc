# provisioning/api/routers/system.py
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...config import settings
from ...services.container import ServiceContainer
from ..deps import get_services

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check(services: ServiceContainer = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint."""
    database = await services.db.health_check()
    relay = "disabled"
    if services.relay is not None:
        relay = "running" if services.relay.running else "stopped"
    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc),
        "version": settings.api_version,
        "database": database,
        "change_relay": relay,
        "platforms": services.registry.ids(),
    }
