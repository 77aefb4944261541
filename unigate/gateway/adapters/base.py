"""
AI Gateway Adapter Types.

Request/response containers and errors shared by the upstream adapter.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx


@dataclass
class UpstreamRequest:
    """Request to send to upstream provider."""

    method: str
    url: str
    headers: Dict[str, str]
    content: bytes = b""
    stream: bool = False
    timeout: Optional[httpx.Timeout] = None


@dataclass
class UpstreamResponse:
    """Buffered response from upstream provider."""

    status_code: int
    content: bytes
    media_type: str = "application/json"


class UpstreamError(Exception):
    """
    Raised when the upstream chat call fails.

    When the upstream answered, its status code and body are kept so the
    client receives them unchanged. Connection failures and timeouts have
    no upstream body and are reported with a gateway error envelope.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        error_type: str = "upstream_error",
        content: Optional[bytes] = None,
        media_type: Optional[str] = None,
        provider: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.content = content
        self.media_type = media_type
        self.provider = provider

    @classmethod
    def from_response(cls, response: httpx.Response, provider: Optional[str] = None) -> "UpstreamError":
        """Wrap a non-success upstream response. The body must already be read."""
        return cls(
            message=f"Upstream returned HTTP {response.status_code}",
            status_code=response.status_code,
            content=response.content,
            media_type=response.headers.get("content-type", "application/json"),
            provider=provider,
        )

    @property
    def has_upstream_body(self) -> bool:
        return self.content is not None

    def to_openai_error(self) -> Dict[str, Any]:
        """Convert to OpenAI error format."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": None,
                "code": self.error_type,
            }
        }


class UpstreamStreamError(Exception):
    """Raised when an upstream event stream terminates abnormally mid-flight."""

    def __init__(self, message: str, provider: Optional[str] = None, chunks_relayed: int = 0):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.chunks_relayed = chunks_relayed
