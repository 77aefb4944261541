"""
Health check and gateway status endpoints.
"""

from fastapi import APIRouter, Depends

from unigate.core.config import Settings
from unigate.core.dependencies import get_app_settings, get_routing_engine
from unigate.gateway.routing import RoutingEngine

router = APIRouter(tags=["Health"])


@router.get("/healthz")
async def health_check():
    """
    Basic health check endpoint.

    Returns the service status without checking dependencies.
    """
    return {"status": "healthy"}


@router.get("/health")
async def health_detailed(
    app_settings: Settings = Depends(get_app_settings),
    routing_engine: RoutingEngine = Depends(get_routing_engine)
):
    """
    Detailed health check with catalog status.
    """
    catalog = routing_engine.catalog

    return {
        "status": "healthy",
        "version": app_settings.app.app_version,
        "models": len(catalog),
        "providers": len(routing_engine.providers),
        "generation": catalog.generation,
    }
