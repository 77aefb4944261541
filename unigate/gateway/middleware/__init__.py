"""
Gateway Middleware Package.

This module provides middleware components for the gateway:
- Authentication: server API key validation
- Tracing: request ID propagation, request logging and request timing

Usage:
    from unigate.gateway.middleware import (
        GatewayAuthenticator,
        get_auth_context,
        generate_request_id,
    )
"""

from unigate.gateway.middleware.auth import (
    AuthContext,
    AuthenticationError,
    GatewayAuthenticator,
    get_auth_context,
)
from unigate.gateway.middleware.trace import (
    REQUEST_ID_HEADER,
    RequestTimer,
    RequestTracingMiddleware,
    extract_or_generate_request_id,
    generate_request_id,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Authentication
    "AuthContext",
    "AuthenticationError",
    "GatewayAuthenticator",
    "get_auth_context",
    # Tracing
    "REQUEST_ID_HEADER",
    "RequestTimer",
    "RequestTracingMiddleware",
    "extract_or_generate_request_id",
    "generate_request_id",
    "get_request_id",
    "set_request_id",
]
