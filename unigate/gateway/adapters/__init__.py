"""
AI Gateway Adapters Package.

All upstream providers speak the OpenAI wire format, so a single
passthrough adapter forwards requests to whichever provider owns the
requested model.

Usage:
    from unigate.gateway.adapters import OpenAICompatibleAdapter

    adapter = OpenAICompatibleAdapter(client)
    response = await adapter.forward(provider, body)
"""

from unigate.gateway.adapters.base import (
    UpstreamError,
    UpstreamRequest,
    UpstreamResponse,
    UpstreamStreamError,
)
from unigate.gateway.adapters.openai_compatible import OpenAICompatibleAdapter

__all__ = [
    "OpenAICompatibleAdapter",
    "UpstreamError",
    "UpstreamRequest",
    "UpstreamResponse",
    "UpstreamStreamError",
]
