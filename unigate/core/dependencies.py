"""
Dependency injection utilities for FastAPI.

Gateway components are created once in the application lifespan and kept
on `app.state`; these dependencies hand them to the route handlers.
"""

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from unigate.core.config import Settings
    from unigate.gateway.adapters import OpenAICompatibleAdapter
    from unigate.gateway.routing import RoutingEngine


def get_routing_engine(request: Request) -> "RoutingEngine":
    """Get the application's routing engine."""
    return request.app.state.routing_engine


def get_adapter(request: Request) -> "OpenAICompatibleAdapter":
    """Get the application's upstream adapter."""
    return request.app.state.adapter


def get_app_settings(request: Request) -> "Settings":
    """Get the settings the application was created with."""
    return request.app.state.settings
