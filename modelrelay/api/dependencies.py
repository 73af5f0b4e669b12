"""
ModelRelay - API Dependencies

Shared dependencies for FastAPI routes.
"""

import json
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request

from ..backends.base import PassthroughBackend
from ..core.errors import (
    InfraError,
    ErrorDetails,
    ErrorType,
    InvalidRequestError,
)
from ..fallback.dispatcher import FallbackDispatcher
from ..fallback.route_cache import RouteCache
from ..fallback.settings import FallbackSettingsService


@dataclass
class RelayServices:
    """Everything a request handler needs, built once by the server lifespan."""
    settings_service: FallbackSettingsService
    dispatcher: FallbackDispatcher
    passthrough: PassthroughBackend
    route_cache: RouteCache


# Global services getter (set by server lifespan)
# This function is set by server.py to avoid circular imports
_services_getter = None


def set_services_getter(getter):
    """Set the function that returns the relay services."""
    global _services_getter
    _services_getter = getter


def get_services() -> RelayServices:
    """
    Get the relay services.

    Uses a getter function set by the server to avoid circular imports.
    """
    if _services_getter is None:
        raise InfraError(
            ErrorDetails(
                code="service_unavailable",
                message="Relay not initialized. Server may be starting up.",
                type=ErrorType.INFRA,
                request_id="",
                retryable=True,
                retry_after=5
            ),
            status_code=503
        )
    return _services_getter()


def get_settings_service() -> FallbackSettingsService:
    return get_services().settings_service


def get_request_id(request: Request) -> str:
    """Request id assigned by the observability middleware, or a fresh one."""
    request_id = getattr(request.state, "request_id", None)
    return request_id or f"req_{uuid.uuid4().hex[:24]}"


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Parse the request body as a JSON object.

    Raises:
        InvalidRequestError: If the body is not valid JSON or not an object
    """
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise InvalidRequestError(
            "Request body is not valid JSON",
            request_id=get_request_id(request)
        ) from None

    if not isinstance(body, dict):
        raise InvalidRequestError(
            "Request body must be a JSON object",
            request_id=get_request_id(request)
        )
    return body


def add_standard_headers(response, request_id: str, trace_id: Optional[str] = None):
    """Add standard correlation headers to response."""
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Trace-Id"] = trace_id or request_id.replace("req_", "trace_")
    return response
