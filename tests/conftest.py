"""
Shared fixtures: simulated upstream providers and a gateway app wired to them.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from unigate.core.config import GatewayConfig, ProviderConfig
from unigate.main import create_app
from unigate.models.gateway import UpstreamProvider

Handler = Callable[[httpx.Request], httpx.Response]


def model_list(*model_ids: str, owned_by: str = "upstream") -> Dict[str, Any]:
    """An OpenAI /models response body."""
    return {
        "object": "list",
        "data": [
            {"id": model_id, "object": "model", "created": 1700000000, "owned_by": owned_by}
            for model_id in model_ids
        ],
    }


def completion(model: str, content: str = "hello") -> Dict[str, Any]:
    """An OpenAI chat completion response body."""
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


class FakeUpstreams:
    """
    Simulated upstream providers behind an httpx.MockTransport.

    Handlers are registered per (method, url); every request is recorded.
    Unregistered routes answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, handler: Handler) -> None:
        self.routes[(method, url)] = handler

    def json(self, method: str, url: str, body: Any, status_code: int = 200) -> None:
        self.add(method, url, lambda request: httpx.Response(status_code, json=body))

    def requests_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, str(request.url)))
        if handler is None:
            return httpx.Response(404, json={"error": {"message": "not found"}})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)


def sse(*events: Dict[str, Any]) -> List[bytes]:
    """Encode chat completion chunks as SSE events, ending with [DONE]."""
    chunks = [f"data: {json.dumps(event)}\n\n".encode() for event in events]
    chunks.append(b"data: [DONE]\n\n")
    return chunks


async def stream_of(chunks: List[bytes], error: Optional[Exception] = None):
    """Async byte stream yielding chunks, then optionally failing."""
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


@pytest.fixture
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture
def provider_a() -> UpstreamProvider:
    return UpstreamProvider(name="a", base_url="http://a.test/v1", api_key="key-a", priority=1)


@pytest.fixture
def provider_b() -> UpstreamProvider:
    return UpstreamProvider(name="b", base_url="http://b.test/v1", api_key="", priority=2)


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """P1 discovers m1; P2 serves m2 statically."""
    return GatewayConfig(
        server_api_key="secret",
        providers=[
            ProviderConfig(name="p1", base_url="http://p1.test/v1", api_key="key-1"),
            ProviderConfig(name="p2", base_url="http://p2.test/v1", models=["m2"]),
        ],
    )


@pytest.fixture
def client(gateway_config: GatewayConfig, upstreams: FakeUpstreams):
    upstreams.json("GET", "http://p1.test/v1/models", model_list("m1", owned_by="p1-org"))

    app = create_app(gateway_config, transport=upstreams.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer secret"}
