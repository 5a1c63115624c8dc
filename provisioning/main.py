# ============================================================================
# Freelancer Provisioning - FastAPI Application Entry Point
# ============================================================================
"""
Main FastAPI application module for the freelancer provisioning service.

This module sets up the FastAPI application with:
- CORS middleware configuration for cross-origin requests
- Service wiring (database, platform registry, change feed, stores, engine)
- Optional Redis change relay for multi-process deployments
- Mapping of the error taxonomy onto HTTP status codes
- API router integration under /api/v1

Usage:
    Direct: python -m provisioning.main
    Server: uvicorn provisioning.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .api.schemas import ErrorResponse
from .config import settings
from .exceptions import (
    ConfigurationError,
    DuplicateFreelancerError,
    FreelancerNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    RemoteIntegrationError,
)
from .services.container import ServiceContainer, build_container
from .services.database_service import database_service

logger = logging.getLogger("provisioning.main")

# ============================================================================
# ERROR MAPPING
# ============================================================================

ERROR_STATUS = (
    (FreelancerNotFoundError, 404, "Not Found"),
    (DuplicateFreelancerError, 409, "Conflict"),
    (InvalidTransitionError, 409, "Conflict"),
    (ConfigurationError, 409, "Platform Configuration Error"),
    (RemoteIntegrationError, 502, "Platform Error"),
    (PersistenceError, 503, "Record Store Unavailable"),
)


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, timestamp=datetime.now(timezone.utc))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _register_error_handlers(app: FastAPI) -> None:
    for exc_class, status_code, title in ERROR_STATUS:

        async def handler(request: Request, exc: Exception, status_code=status_code, title=title) -> JSONResponse:
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return _error_response(status_code, title, str(exc))

        app.add_exception_handler(exc_class, handler)


# ============================================================================
# APPLICATION FACTORY
# ============================================================================

def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service container (tests); by default one is built
            at startup from settings and the shared database service
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = services or build_container(database_service, redis_url=settings.redis_url)
        logger.info(f"Starting {settings.api_title} {settings.api_version}")
        await container.start()
        app.state.services = container
        logger.info(
            f"Ready: {len(container.registry)} platform modules, "
            f"change relay {'on' if container.relay else 'off'}"
        )
        try:
            yield
        finally:
            logger.info("Shutting down")
            await container.stop()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Provisions freelancers across external platforms and tracks their access.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "status": "running",
            "docs_url": "/docs",
            "health_check": "/api/v1/health",
        }

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("provisioning.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
