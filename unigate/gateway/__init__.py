"""
AI Gateway Package.

The gateway provides a unified OpenAI-compatible API for routing
requests to multiple upstream providers.

Features:
- OpenAI-compatible endpoints (/v1/chat/completions, /v1/models)
- Model catalog merged from static lists and live discovery,
  deduplicated by provider priority
- Routing by model name with buffered and streamed passthrough
- Server API key authentication

Architecture:
- Data Plane: Handles chat requests and relays upstream responses
- Control Plane: Catalog refresh

Usage:
    from unigate.gateway.routers import openai_router, admin_models_router

    app.include_router(openai_router)
    app.include_router(admin_models_router)
"""

from unigate.gateway.adapters import (
    OpenAICompatibleAdapter,
    UpstreamError,
    UpstreamStreamError,
)
from unigate.gateway.routing import (
    ModelCatalog,
    ModelNotFoundError,
    RoutingEngine,
)
from unigate.gateway.services import (
    DiscoveryError,
    ModelDiscoveryService,
)
from unigate.gateway.middleware import (
    AuthContext,
    AuthenticationError,
    GatewayAuthenticator,
)
from unigate.gateway.routers import (
    admin_models_router,
    openai_router,
)

__all__ = [
    # Adapters
    "OpenAICompatibleAdapter",
    "UpstreamError",
    "UpstreamStreamError",
    # Routing
    "ModelCatalog",
    "ModelNotFoundError",
    "RoutingEngine",
    # Services
    "DiscoveryError",
    "ModelDiscoveryService",
    # Middleware
    "AuthContext",
    "AuthenticationError",
    "GatewayAuthenticator",
    # Routers
    "openai_router",
    "admin_models_router",
]
