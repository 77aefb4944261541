"""
OpenAI-Compatible Adapter.

Forwards chat completion requests to the provider that owns the model.
Every provider speaks the OpenAI wire format, so request and response
bodies pass through untouched:
- Buffered: the upstream status and body are relayed verbatim
- Streaming: upstream chunks are yielded as they arrive, byte for byte,
  including the terminal `data: [DONE]` event

The adapter keeps no state between calls and never retries.
"""

from typing import AsyncIterator, Dict, Optional

import httpx
import structlog

from unigate.gateway.adapters.base import (
    UpstreamError,
    UpstreamRequest,
    UpstreamResponse,
    UpstreamStreamError,
)
from unigate.models.gateway import UpstreamProvider

logger = structlog.get_logger(__name__)


class OpenAICompatibleAdapter:
    """
    Request forwarder for OpenAI-compatible providers.

    Usage:
        adapter = OpenAICompatibleAdapter(client)
        response = await adapter.forward(provider, body)

        upstream = await adapter.open_stream(provider, body)
        async for chunk in adapter.relay_stream(upstream, provider):
            ...
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_ms: int = 120000,
        connect_timeout_ms: int = 10000
    ):
        self.client = client
        self.timeout = httpx.Timeout(timeout_ms / 1000, connect=connect_timeout_ms / 1000)

    def build_upstream_request(
        self,
        provider: UpstreamProvider,
        body: bytes,
        stream: bool = False,
        request_id: Optional[str] = None
    ) -> UpstreamRequest:
        """Build the upstream chat completion request for a provider."""
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        headers.update(provider.auth_headers())

        if request_id:
            headers["X-Request-ID"] = request_id

        return UpstreamRequest(
            method="POST",
            url=provider.chat_completions_url,
            headers=headers,
            content=body,
            stream=stream,
            timeout=self.timeout,
        )

    async def forward(
        self,
        provider: UpstreamProvider,
        body: bytes,
        request_id: Optional[str] = None
    ) -> UpstreamResponse:
        """
        Forward a non-streaming request and return the upstream body.

        Raises:
            UpstreamError: On connection failure, timeout or non-success status
        """
        upstream_request = self.build_upstream_request(provider, body, stream=False, request_id=request_id)
        response = await self._send(upstream_request, provider)

        if not response.is_success:
            logger.warning(
                "Upstream returned error",
                provider=provider.name,
                status_code=response.status_code,
            )
            raise UpstreamError.from_response(response, provider=provider.name)

        return UpstreamResponse(
            status_code=response.status_code,
            content=response.content,
            media_type=response.headers.get("content-type", "application/json"),
        )

    async def open_stream(
        self,
        provider: UpstreamProvider,
        body: bytes,
        request_id: Optional[str] = None
    ) -> httpx.Response:
        """
        Open a streaming upstream call and check its status.

        The returned response is open; the caller must consume it through
        relay_stream() (which closes it) or close it.

        Raises:
            UpstreamError: On connection failure, timeout or non-success status
        """
        upstream_request = self.build_upstream_request(provider, body, stream=True, request_id=request_id)
        response = await self._send(upstream_request, provider)

        if not response.is_success:
            try:
                await response.aread()
            except httpx.HTTPError as e:
                raise UpstreamError(
                    message=f"Upstream returned HTTP {response.status_code}: {e}",
                    status_code=response.status_code,
                    provider=provider.name,
                ) from e
            finally:
                await response.aclose()

            logger.warning(
                "Upstream stream returned error",
                provider=provider.name,
                status_code=response.status_code,
            )
            raise UpstreamError.from_response(response, provider=provider.name)

        return response

    async def relay_stream(
        self,
        response: httpx.Response,
        provider: UpstreamProvider
    ) -> AsyncIterator[bytes]:
        """
        Yield upstream chunks unchanged as they arrive.

        If the upstream aborts mid-stream, UpstreamStreamError is raised after
        the chunks received so far have been yielded; nothing is synthesized.
        The upstream response is always closed, including when the consumer
        stops early (client disconnect).
        """
        chunks = 0
        try:
            async for chunk in response.aiter_bytes():
                chunks += 1
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(
                "Upstream stream aborted",
                provider=provider.name,
                chunks_relayed=chunks,
                error=str(e) or type(e).__name__,
            )
            raise UpstreamStreamError(
                f"Upstream stream aborted: {type(e).__name__}",
                provider=provider.name,
                chunks_relayed=chunks,
            ) from e
        finally:
            await response.aclose()

    async def _send(self, upstream_request: UpstreamRequest, provider: UpstreamProvider) -> httpx.Response:
        request = self.client.build_request(
            method=upstream_request.method,
            url=upstream_request.url,
            headers=upstream_request.headers,
            content=upstream_request.content,
            timeout=upstream_request.timeout,
        )

        try:
            return await self.client.send(request, stream=upstream_request.stream)
        except httpx.TimeoutException as e:
            logger.warning("Upstream request timed out", provider=provider.name, url=upstream_request.url)
            raise UpstreamError(
                message="Upstream request timed out",
                status_code=504,
                error_type="timeout_error",
                provider=provider.name,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "Upstream request failed",
                provider=provider.name,
                url=upstream_request.url,
                error=str(e),
            )
            raise UpstreamError(
                message=f"Failed to forward request: {e}",
                status_code=502,
                error_type="upstream_connection_error",
                provider=provider.name,
            ) from e
