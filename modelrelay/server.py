"""
ModelRelay - Main API Server

FastAPI server that accepts provider-shaped requests, routes requests for
virtual models through their fallback chains and passes everything else
through to the upstream.

Supports three modes:
- MODE=local: Development mode; USE_STUB_BACKENDS=true for offline runs
- MODE=prod: Real upstreams only (default)
- MODE=test: Deterministic test mode

Features:
- OpenAI, Anthropic and Google request shapes in and out
- Sequential fallback chains with sticky routes
- Fallback configuration management API
- Full observability (metrics, tracing, logging)
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import fallback_router, proxy_router, set_services_getter
from .api import dependencies as api_deps
from .api.dependencies import RelayServices
from .backends import Backend, EnvTokenProvider, HttpBackend, PassthroughBackend, StubBackend
from .config import Settings, load_settings, validate_startup_config
from .core.errors import (
    RelayException,
    InfraError,
    ErrorDetails,
    ErrorType,
)
from .fallback import FallbackSettingsService, JsonFileConfigStore, RouteCache
from .fallback.dispatcher import FallbackDispatcher
from .observability import (
    setup_observability,
    ObservabilityMiddleware,
    get_logger,
    metrics_endpoint,
)


# ============================================================
# Global state
# ============================================================

relay_services: Optional[RelayServices] = None
relay_settings: Optional[Settings] = None


def build_backend(settings: Settings) -> Backend:
    """Stub backend when requested, otherwise httpx against the configured upstreams."""
    if settings.use_stub_backends:
        return StubBackend()
    return HttpBackend(
        base_url=settings.upstream_base_url,
        base_urls=settings.provider_base_urls,
        token_provider=EnvTokenProvider(),
        timeout=settings.attempt_timeout,
    )


def build_services(settings: Settings, backend: Optional[Backend] = None) -> RelayServices:
    """Wire the store, route cache, settings service, dispatcher and passthrough."""
    backend = backend or build_backend(settings)
    route_cache = RouteCache()
    settings_service = FallbackSettingsService(
        JsonFileConfigStore(settings.fallback_config_path),
        route_cache,
    )
    dispatcher = FallbackDispatcher(
        config_provider=lambda: settings_service.configuration,
        backend=backend,
        route_cache=route_cache,
        attempt_timeout=settings.attempt_timeout,
        chain_budget=settings.chain_budget,
    )
    return RelayServices(
        settings_service=settings_service,
        dispatcher=dispatcher,
        passthrough=PassthroughBackend(backend, enabled=settings.passthrough),
        route_cache=route_cache,
    )


# ============================================================
# Lifespan management
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    global relay_services, relay_settings

    settings = load_settings()
    validate_startup_config(settings)

    # Initialize observability first (for logging during startup)
    observability = setup_observability(
        service_name="modelrelay",
        service_version=__version__,
        otlp_endpoint=settings.otlp_endpoint,
        log_level=settings.log_level,
        json_logs=settings.json_logs,
    )

    logger = get_logger("modelrelay.server")
    logger.info(f"ModelRelay starting in {settings.mode.value.upper()} mode")

    relay_settings = settings
    relay_services = build_services(settings)

    config = relay_services.settings_service.configuration
    logger.info(
        "ModelRelay server ready",
        mode=settings.mode.value,
        backend=relay_services.dispatcher.backend.name,
        config_path=str(settings.fallback_config_path),
        fallback_enabled=config.is_enabled,
        virtual_models=len(config.virtual_models),
        passthrough=settings.passthrough,
    )
    if settings.use_stub_backends:
        logger.info("Using stub backends; no upstream calls will be made")

    yield

    # Shutdown: Close backend
    await relay_services.dispatcher.backend.close()
    relay_services = None

    # Shutdown tracing
    if "tracing" in observability:
        observability["tracing"].shutdown()

    logger.info("ModelRelay server stopped")


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="ModelRelay",
    description="Cross-provider request translation and fallback routing",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ObservabilityMiddleware handles metrics, tracing, and logging in one place
app.add_middleware(ObservabilityMiddleware, service_name="modelrelay")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(proxy_router)
app.include_router(fallback_router)


# ============================================================
# Services getter (for dependency injection)
# ============================================================

def get_relay_services() -> RelayServices:
    """Get the relay services for dependency injection."""
    if relay_services is None:
        raise InfraError(
            ErrorDetails(
                code="service_unavailable",
                message="Relay not initialized",
                type=ErrorType.INFRA,
                request_id="",
                retryable=True,
                retry_after=5
            ),
            status_code=503
        )
    return relay_services


set_services_getter(get_relay_services)


# ============================================================
# Core Endpoints (not in routes)
# ============================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    services = get_relay_services()
    config = services.settings_service.configuration

    return {
        "status": "healthy",
        "version": __version__,
        "mode": relay_settings.mode.value if relay_settings else "unknown",
        "backend": services.dispatcher.backend.name,
        "fallback": {
            "enabled": config.is_enabled,
            "virtual_models": len(config.virtual_models),
            "active_routes": len(services.route_cache.get_all_route_states()),
        },
    }


@app.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes all collected metrics in Prometheus text format.
    """
    return metrics_endpoint()


@app.get("/ready")
async def readiness_check():
    """
    Readiness check endpoint.

    Returns 200 once the relay services are wired and the configuration
    is loaded.
    """
    if relay_services is None:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "reason": "Relay services not initialized"
            }
        )

    return {"status": "ready"}


# ============================================================
# Error handlers
# ============================================================

@app.exception_handler(RelayException)
async def relay_exception_handler(request: Request, exc: RelayException):
    """Handle all canonical relay errors."""
    if not exc.error.request_id:
        exc.error.request_id = getattr(request.state, "request_id", "") or f"req_{uuid.uuid4().hex[:24]}"

    headers = {
        "X-Request-Id": exc.error.request_id,
        "X-Trace-Id": exc.error.request_id.replace("req_", "trace_"),
        "X-Error-Type": exc.error.type.value,
        "X-Error-Code": exc.error.code,
    }

    if exc.error.retry_after:
        headers["Retry-After"] = str(exc.error.retry_after)

    if exc.error.provider:
        headers["X-Provider"] = exc.error.provider

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.error.to_dict(),
        headers=headers
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle standard HTTP exceptions."""
    request_id = f"req_{uuid.uuid4().hex[:24]}"

    response = JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "http_error",
                "message": str(exc.detail) if isinstance(exc.detail, str) else exc.detail.get("message", "Unknown error"),
                "type": "semantic_error" if exc.status_code < 500 else "infra_error",
                "request_id": request_id,
                "retryable": exc.status_code >= 500
            }
        },
    )
    return api_deps.add_standard_headers(response, request_id)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = f"req_{uuid.uuid4().hex[:24]}"

    get_logger("modelrelay.server").exception(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
    )

    response = JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred",
                "type": "infra_error",
                "request_id": request_id,
                "retryable": True
            }
        },
    )
    return api_deps.add_standard_headers(response, request_id)


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(
        "modelrelay.server:app",
        host=settings.host,
        port=settings.port,
        reload=False
    )
