"""
Gateway Routing Package.

This module provides the model registry and routing logic for the gateway:
- Catalog snapshots (model id -> owning provider)
- Atomic snapshot publication on refresh

Usage:
    from unigate.gateway.routing import RoutingEngine

    engine = RoutingEngine(providers, discovery_service)
    await engine.refresh()
    provider = engine.catalog.resolve("gpt-4o")
"""

from unigate.gateway.routing.engine import (
    ModelCatalog,
    ModelNotFoundError,
    RoutingEngine,
)

__all__ = [
    "ModelCatalog",
    "ModelNotFoundError",
    "RoutingEngine",
]
