"""
Main FastAPI application entry point.

`create_app` is an application factory: it loads the provider
configuration (failing fast with ConfigError), and the application
lifespan builds the model catalog before traffic is served.

    uvicorn unigate.main:create_app --factory
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator, Optional

import httpx
import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unigate.api.v1 import health
from unigate.core.config import GatewayConfig, LogSettings, Settings, load_gateway_config
from unigate.core.config import settings as default_settings
from unigate.gateway import (
    AuthenticationError,
    GatewayAuthenticator,
    ModelDiscoveryService,
    ModelNotFoundError,
    OpenAICompatibleAdapter,
    RoutingEngine,
    UpstreamError,
    admin_models_router,
    openai_router,
)
from unigate.gateway.middleware import RequestTracingMiddleware
from unigate.gateway.routers.openai_compat import upstream_error_response
from unigate.models.gateway import build_providers


def configure_logging(log_settings: LogSettings) -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", level=log_settings.level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_settings.format == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def openai_error(message: str, error_type: str, code: Optional[str] = None) -> dict:
    return {
        "error": {
            "message": message,
            "type": error_type,
            "param": None,
            "code": code,
        }
    }


def create_app(
    gateway_config: Optional[GatewayConfig] = None,
    app_settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Create the gateway application.

    Args:
        gateway_config: Provider configuration. Loaded from APP_CONFIG_FILE when omitted.
        app_settings: Environment settings. Defaults to the global settings.
        transport: Optional httpx transport for all upstream calls.

    Raises:
        ConfigError: If the provider configuration is missing or invalid
    """
    app_settings = app_settings or default_settings
    configure_logging(app_settings.log)

    if gateway_config is None:
        gateway_config = load_gateway_config(app_settings.app.config_file)

    providers = build_providers(gateway_config.providers)
    gateway_settings = app_settings.gateway

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        Creates the shared upstream client, builds the initial catalog and
        runs the periodic refresh task.
        """
        # Startup
        logger.info("Starting application", version=app_settings.app.app_version, env=app_settings.app.app_env)
        logger.info("API key authentication", enabled=gateway_config.auth_enabled)

        client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(
                gateway_settings.upstream_timeout_ms / 1000,
                connect=gateway_settings.connect_timeout_ms / 1000,
            ),
            limits=httpx.Limits(max_connections=gateway_settings.max_connections),
        )

        routing_engine = RoutingEngine(
            providers,
            ModelDiscoveryService(client, timeout_ms=gateway_settings.discovery_timeout_ms),
        )
        for provider in routing_engine.describe():
            logger.info("Configured provider", **provider)

        app.state.routing_engine = routing_engine
        app.state.adapter = OpenAICompatibleAdapter(
            client,
            timeout_ms=gateway_settings.upstream_timeout_ms,
            connect_timeout_ms=gateway_settings.connect_timeout_ms,
        )

        await routing_engine.refresh()

        refresh_task: Optional[asyncio.Task] = None
        if gateway_settings.refresh_interval_seconds > 0:
            refresh_task = asyncio.create_task(
                routing_engine.run_periodic_refresh(gateway_settings.refresh_interval_seconds)
            )

        try:
            yield
        finally:
            # Shutdown
            logger.info("Shutting down application")
            if refresh_task is not None:
                refresh_task.cancel()
                with suppress(asyncio.CancelledError):
                    await refresh_task
            await client.aclose()

    app = FastAPI(
        title=app_settings.app.app_name,
        version=app_settings.app.app_version,
        description="Unified OpenAI-compatible gateway",
        docs_url="/docs" if app_settings.docs_enabled else None,
        redoc_url="/redoc" if app_settings.docs_enabled else None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.gateway_config = gateway_config
    app.state.authenticator = GatewayAuthenticator(gateway_config.server_api_key)

    # ========================================================================
    # Middleware
    # ========================================================================

    app.add_middleware(RequestTracingMiddleware, log_requests=app_settings.log.requests)

    # ========================================================================
    # Exception Handlers
    # ========================================================================

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        """Handle HTTP exceptions in OpenAI error format."""
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            content = exc.detail
        else:
            error_type = "invalid_request_error" if exc.status_code < 500 else "server_error"
            content = openai_error(str(exc.detail), error_type)

        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_exception_handler(request, exc: AuthenticationError):
        """Handle missing or invalid server API keys."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_openai_error(),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ModelNotFoundError)
    async def model_not_found_handler(request, exc: ModelNotFoundError):
        """Handle requests for models absent from the catalog."""
        logger.info("Unknown model requested", model=exc.model)
        content = openai_error(str(exc), "invalid_request_error", code="model_not_found")
        content["error"]["param"] = "model"
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request, exc: UpstreamError):
        """Relay upstream failures: the upstream's own status and body when it answered."""
        return upstream_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Handle validation errors."""
        messages = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=openai_error(messages or "Request validation failed", "invalid_request_error"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            error=str(exc),
            exc_info=exc,
        )

        message = str(exc) if app_settings.app.app_debug else "An internal error occurred"
        return JSONResponse(status_code=500, content=openai_error(message, "internal_error"))

    # ========================================================================
    # Routes
    # ========================================================================

    app.include_router(health.router)
    app.include_router(openai_router)
    app.include_router(admin_models_router)

    return app
