"""Tests for authentication and tracing helpers."""

import re

import pytest

from unigate.gateway.adapters import UpstreamStreamError
from unigate.gateway.middleware import (
    AuthenticationError,
    GatewayAuthenticator,
    RequestTimer,
    RequestTracingMiddleware,
    extract_or_generate_request_id,
    generate_request_id,
    get_request_id,
)
from unigate.gateway.middleware.trace import request_id_var


class TestGatewayAuthenticator:
    """Tests for GatewayAuthenticator."""

    def test_valid_key(self):
        ctx = GatewayAuthenticator("secret").authenticate("Bearer secret", "/v1/chat/completions")

        assert ctx.authenticated is True
        assert ctx.auth_enabled is True

    def test_scheme_is_case_insensitive(self):
        ctx = GatewayAuthenticator("secret").authenticate("bearer secret", "/v1/chat/completions")

        assert ctx.authenticated is True

    @pytest.mark.parametrize("header", [None, "", "secret", "Bearer", "Basic secret", "Bearer wrong", "Bearer secret extra"])
    def test_rejected(self, header):
        with pytest.raises(AuthenticationError) as exc_info:
            GatewayAuthenticator("secret").authenticate(header, "/v1/chat/completions")

        assert exc_info.value.status_code == 401
        assert exc_info.value.to_openai_error()["error"]["type"] == "authentication_error"

    @pytest.mark.parametrize("server_key", [None, ""])
    def test_disabled_without_server_key(self, server_key):
        authenticator = GatewayAuthenticator(server_key)
        ctx = authenticator.authenticate(None, "/v1/chat/completions")

        assert authenticator.enabled is False
        assert ctx.auth_enabled is False


class TestRequestId:
    """Tests for request id helpers."""

    def test_format(self):
        assert re.fullmatch(r"req_[0-9a-f]+_[0-9a-f]{12}", generate_request_id())

    def test_unique(self):
        assert len({generate_request_id() for _ in range(100)}) == 100

    def test_propagates_caller_id(self):
        assert extract_or_generate_request_id({"X-Request-ID": "abc"}) == "abc"

    def test_generates_when_absent(self):
        assert extract_or_generate_request_id({}).startswith("req_")


class TestRequestTimer:
    """Tests for RequestTimer."""

    def test_not_started(self):
        timer = RequestTimer()

        assert timer.total_ms is None
        assert timer.first_chunk_ms is None

    def test_first_chunk_recorded_once(self):
        timer = RequestTimer()
        timer.start()
        timer.record_chunk()
        first = timer.first_chunk
        timer.record_chunk()
        timer.stop()

        assert timer.first_chunk == first
        assert timer.chunks == 2
        assert timer.first_chunk_ms >= 0
        assert timer.total_ms >= timer.first_chunk_ms


def http_scope(headers=()):
    return {
        "type": "http",
        "method": "POST",
        "path": "/v1/chat/completions",
        "headers": list(headers),
    }


async def receive():
    return {"type": "http.request", "body": b"", "more_body": False}


class TestRequestTracingMiddleware:
    """Tests for RequestTracingMiddleware."""

    @pytest.mark.asyncio
    async def test_adds_request_id_header(self):
        seen = []

        async def app(scope, receive, send):
            seen.append(get_request_id())
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b"ok"})

        sent = []

        async def send(message):
            sent.append(message)

        await RequestTracingMiddleware(app)(http_scope([(b"x-request-id", b"req_caller")]), receive, send)

        assert dict(sent[0]["headers"])[b"x-request-id"] == b"req_caller"
        assert seen == ["req_caller"]
        assert request_id_var.get() is None

    @pytest.mark.asyncio
    async def test_generates_request_id(self):
        async def app(scope, receive, send):
            await send({"type": "http.response.start", "status": 204, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        sent = []

        async def send(message):
            sent.append(message)

        await RequestTracingMiddleware(app, log_requests=False)(http_scope(), receive, send)

        assert dict(sent[0]["headers"])[b"x-request-id"].startswith(b"req_")

    @pytest.mark.asyncio
    async def test_error_after_response_start_propagates(self):
        async def app(scope, receive, send):
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b"data: c1\n\n", "more_body": True})
            raise UpstreamStreamError("Upstream stream aborted", provider="p1", chunks_relayed=1)

        sent = []

        async def send(message):
            sent.append(message)

        with pytest.raises(UpstreamStreamError):
            await RequestTracingMiddleware(app)(http_scope(), receive, send)

        # No terminating empty body: the server must drop the connection
        assert [m["type"] for m in sent] == ["http.response.start", "http.response.body"]
        assert sent[-1]["more_body"] is True
        assert request_id_var.get() is None

    @pytest.mark.asyncio
    async def test_non_http_scope_passthrough(self):
        calls = []

        async def app(scope, receive, send):
            calls.append(scope["type"])

        async def send(message):
            pass

        await RequestTracingMiddleware(app)({"type": "lifespan"}, receive, send)

        assert calls == ["lifespan"]
