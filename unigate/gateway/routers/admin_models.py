"""
Gateway Control Plane Router.

Endpoints:
- POST /admin/models/refresh - Rebuild the model catalog from all providers
"""

import structlog
from fastapi import APIRouter, Depends

from unigate.core.dependencies import get_routing_engine
from unigate.gateway.middleware import AuthContext, get_auth_context
from unigate.gateway.routing import RoutingEngine

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/models/refresh")
async def refresh_models(
    auth_ctx: AuthContext = Depends(get_auth_context),
    routing_engine: RoutingEngine = Depends(get_routing_engine)
):
    """
    Rebuild the model catalog.

    The new catalog replaces the current one only once it is complete;
    requests in flight keep using the snapshot they started with.
    """
    previous = routing_engine.catalog
    catalog = await routing_engine.refresh()

    logger.info(
        "Catalog refreshed on request",
        generation=catalog.generation,
        models=len(catalog),
        previous_models=len(previous),
    )

    return {
        "object": "catalog.refresh",
        "models": len(catalog),
        "generation": catalog.generation,
    }
