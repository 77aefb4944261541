"""
Gateway Routers Package.

This module provides the FastAPI routers for the gateway:
- Data Plane: OpenAI-compatible API endpoints (/v1/*)
- Control Plane: Admin API endpoints (/admin/*)

Usage:
    from unigate.gateway.routers import openai_router, admin_models_router

    app.include_router(openai_router)
    app.include_router(admin_models_router)
"""

from unigate.gateway.routers.openai_compat import router as openai_router
from unigate.gateway.routers.admin_models import router as admin_models_router

__all__ = [
    "openai_router",
    "admin_models_router",
]
