"""
Request Tracing Middleware.

Request ID generation/propagation, request logging and request timing
for the gateway.
"""

import contextvars
import secrets
import time
from typing import Mapping, Optional

import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Context variable for request tracking
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """
    Generate a unique request ID.

    Format: req_<timestamp_hex>_<random>
    Example: req_18d5b3f2_a7b9c4d2e1f0
    """
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(6)
    return f"req_{timestamp:x}_{random_part}"


def extract_or_generate_request_id(headers: Mapping[str, str]) -> str:
    """Use the caller's X-Request-ID when present, else generate one."""
    return headers.get(REQUEST_ID_HEADER) or generate_request_id()


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_var.get() or generate_request_id()


def set_request_id(request_id: str) -> contextvars.Token:
    """Set request ID for current async task."""
    return request_id_var.set(request_id)


class RequestTracingMiddleware:
    """
    ASGI middleware for request tracing.

    Handles:
    - Request ID propagation (caller's X-Request-ID) or generation
    - X-Request-ID on every response
    - Request start/completion logging

    Exceptions from the application are logged and re-raised, also after
    the response has started, so the server aborts the connection instead
    of completing a truncated body.
    """

    def __init__(self, app: ASGIApp, log_requests: bool = True):
        self.app = app
        self.log_requests = log_requests

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = extract_or_generate_request_id(Headers(scope=scope))
        token = set_request_id(request_id)
        scope.setdefault("state", {})["request_id"] = request_id

        method = scope["method"]
        path = scope["path"]
        start_time = time.perf_counter()
        status_code: Optional[int] = None

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        if self.log_requests:
            logger.info("Request started", method=method, path=path, request_id=request_id)

        try:
            await self.app(scope, receive, send_with_request_id)
        except Exception as e:
            logger.error(
                "Request failed",
                method=method,
                path=path,
                status_code=status_code,
                response_started=status_code is not None,
                error=str(e) or type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                request_id=request_id,
            )
            raise
        else:
            if self.log_requests:
                logger.info(
                    "Request completed",
                    method=method,
                    path=path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    request_id=request_id,
                )
        finally:
            request_id_var.reset(token)


class RequestTimer:
    """
    Monotonic timer for a relayed request.

    Tracks total duration and, for streams, the delay until the first
    upstream chunk reached the client.
    """

    def __init__(self):
        self.started: Optional[float] = None
        self.stopped: Optional[float] = None
        self.first_chunk: Optional[float] = None
        self.chunks = 0

    def start(self) -> None:
        self.started = time.perf_counter()

    def stop(self) -> None:
        self.stopped = time.perf_counter()

    def record_chunk(self) -> None:
        """Count a relayed chunk; the first one fixes time-to-first-chunk."""
        if self.first_chunk is None:
            self.first_chunk = time.perf_counter()
        self.chunks += 1

    @property
    def total_ms(self) -> Optional[int]:
        if self.started is None:
            return None
        end = self.stopped if self.stopped is not None else time.perf_counter()
        return int((end - self.started) * 1000)

    @property
    def first_chunk_ms(self) -> Optional[int]:
        if self.started is None or self.first_chunk is None:
            return None
        return int((self.first_chunk - self.started) * 1000)
