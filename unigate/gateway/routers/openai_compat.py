"""
Gateway Data Plane Router.

This module implements the OpenAI-compatible API endpoints of the gateway.
Requests are routed by model name to the provider that serves the model.

Endpoints:
- POST /v1/chat/completions - Chat completions (streaming supported)
- GET /v1/models - List available models (no authentication)
"""

import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from unigate.core.dependencies import get_adapter, get_routing_engine
from unigate.gateway.adapters import OpenAICompatibleAdapter, UpstreamError
from unigate.gateway.middleware import (
    AuthContext,
    RequestTimer,
    get_auth_context,
    get_request_id,
)
from unigate.gateway.routing import RoutingEngine
from unigate.models.gateway import UpstreamProvider

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["gateway"])


# =============================================================================
# Helper Functions
# =============================================================================

def invalid_request(message: str, param: Optional[str] = None, code: Optional[str] = None) -> HTTPException:
    """Build a 400 error in OpenAI format."""
    return HTTPException(status_code=400, detail={
        "error": {
            "message": message,
            "type": "invalid_request_error",
            "param": param,
            "code": code,
        }
    })


def parse_request_body(body: bytes) -> Dict[str, Any]:
    """Decode a JSON object request body."""
    try:
        payload = json.loads(body)
    except ValueError:
        raise invalid_request("Invalid JSON body")

    if not isinstance(payload, dict):
        raise invalid_request("Request body must be a JSON object")

    return payload


def upstream_error_response(error: UpstreamError) -> Response:
    """Relay an upstream failure: the upstream's own status and body when it answered."""
    if error.has_upstream_body:
        return Response(
            content=error.content,
            status_code=error.status_code,
            media_type=error.media_type,
        )
    return JSONResponse(status_code=error.status_code, content=error.to_openai_error())


async def stream_response(
    adapter: OpenAICompatibleAdapter,
    upstream: httpx.Response,
    provider: UpstreamProvider,
    model: str,
    timer: RequestTimer
) -> AsyncIterator[bytes]:
    """Relay upstream chunks and log the outcome of the stream."""
    async for chunk in adapter.relay_stream(upstream, provider):
        timer.record_chunk()
        yield chunk

    timer.stop()
    logger.info(
        "Stream completed",
        model=model,
        provider=provider.name,
        duration_ms=timer.total_ms,
        first_chunk_ms=timer.first_chunk_ms,
        chunks=timer.chunks,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/chat/completions")
async def chat_completions(
    request: Request,
    auth_ctx: AuthContext = Depends(get_auth_context),
    routing_engine: RoutingEngine = Depends(get_routing_engine),
    adapter: OpenAICompatibleAdapter = Depends(get_adapter)
):
    """
    Create a chat completion.

    Compatible with OpenAI's /v1/chat/completions endpoint. The request body
    is forwarded unchanged to the provider that serves `model`; `stream`
    selects a streamed (SSE) or buffered relay.
    """
    timer = RequestTimer()
    timer.start()

    request_id = get_request_id()
    body = await request.body()
    payload = parse_request_body(body)

    model = payload.get("model")
    if not isinstance(model, str) or not model:
        raise invalid_request("Missing 'model' field", param="model")

    stream = payload.get("stream", False) is True

    # ModelNotFoundError is rendered as 400 model_not_found by the app handler
    provider = routing_engine.catalog.resolve(model)

    logger.info(
        "Forwarding chat completion",
        model=model,
        provider=provider.name,
        stream=stream,
    )

    try:
        if stream:
            upstream = await adapter.open_stream(provider, body, request_id=request_id)
            return StreamingResponse(
                stream_response(adapter, upstream, provider, model, timer),
                status_code=upstream.status_code,
                media_type=upstream.headers.get("content-type", "text/event-stream"),
                headers={"Cache-Control": "no-cache"},
                background=BackgroundTask(upstream.aclose),
            )

        result = await adapter.forward(provider, body, request_id=request_id)
    except UpstreamError as e:
        timer.stop()
        logger.warning(
            "Chat completion failed upstream",
            model=model,
            provider=provider.name,
            status_code=e.status_code,
            duration_ms=timer.total_ms,
        )
        raise

    timer.stop()
    logger.info(
        "Chat completion relayed",
        model=model,
        provider=provider.name,
        duration_ms=timer.total_ms,
    )
    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=result.media_type,
    )


@router.get("/models")
async def list_models(
    routing_engine: RoutingEngine = Depends(get_routing_engine)
):
    """
    List available models.

    Returns every model of the current catalog with its metadata exactly
    as reported by the provider (or synthesized for static models).
    Compatible with OpenAI's /v1/models endpoint.
    """
    return JSONResponse(content=routing_engine.catalog.to_openai_list())
