"""
Gateway Authentication Middleware.

Clients authenticate with the server API key from the configuration file,
sent as `Authorization: Bearer <key>`. When no server key is configured,
authentication is disabled. Routes that serve public data (model listing,
health) declare no auth dependency and are never checked.
"""

import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from fastapi import Header, Request

logger = structlog.get_logger(__name__)


@dataclass
class AuthContext:
    """Authentication context for a gateway request."""

    authenticated: bool
    auth_enabled: bool
    endpoint: str


class AuthenticationError(Exception):
    """Exception raised when authentication fails."""

    def __init__(
        self,
        message: str,
        error_type: str = "authentication_error",
        status_code: int = 401
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code

    def to_openai_error(self) -> Dict[str, Any]:
        """Convert to OpenAI error format."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": None,
                "code": "invalid_api_key",
            }
        }


class GatewayAuthenticator:
    """
    Validates the server API key.

    Performs:
    1. Disabled-auth bypass (no server key configured)
    2. Bearer token extraction
    3. Constant-time key comparison
    """

    def __init__(self, server_api_key: Optional[str] = None):
        self._server_api_key = server_api_key or None

    @property
    def enabled(self) -> bool:
        return self._server_api_key is not None

    def authenticate(
        self,
        authorization_header: Optional[str],
        endpoint: str
    ) -> AuthContext:
        """
        Authenticate a request using the Authorization header.

        Args:
            authorization_header: The Authorization header value
            endpoint: The requested endpoint path

        Returns:
            AuthContext describing the outcome

        Raises:
            AuthenticationError: If a key is required and missing or wrong
        """
        if not self.enabled:
            return AuthContext(authenticated=False, auth_enabled=self.enabled, endpoint=endpoint)

        api_key = self._extract_bearer_token(authorization_header)

        if not secrets.compare_digest(api_key.encode(), self._server_api_key.encode()):
            logger.info("Rejected request with invalid API key", endpoint=endpoint)
            raise AuthenticationError("Invalid API key")

        return AuthContext(authenticated=True, auth_enabled=True, endpoint=endpoint)

    def _extract_bearer_token(self, authorization_header: Optional[str]) -> str:
        """Extract the Bearer token from Authorization header."""
        if not authorization_header:
            logger.info("Rejected request without Authorization header")
            raise AuthenticationError("Missing Authorization header")

        parts = authorization_header.split()
        if len(parts) != 2:
            raise AuthenticationError("Invalid Authorization header format")

        scheme, token = parts
        if scheme.lower() != "bearer":
            raise AuthenticationError("Invalid authentication scheme. Use 'Bearer <api_key>'")

        return token


async def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(None)
) -> AuthContext:
    """
    Authenticate request and return auth context.

    Raises:
        AuthenticationError: Rendered as 401 by the application's handler
    """
    authenticator: GatewayAuthenticator = request.app.state.authenticator
    return authenticator.authenticate(authorization, request.url.path)
