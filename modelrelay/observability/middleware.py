"""
ModelRelay - Observability Middleware

Unified middleware that combines metrics, tracing, and logging for every
inbound request, plus the one-call setup_observability() used at startup.
"""

import time
import uuid
from typing import Optional, Dict, Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
from opentelemetry.trace import Status, StatusCode

from .metrics import get_metrics, setup_metrics
from .tracing import get_tracing_manager, TraceContext, setup_tracing
from .logging import get_logger, LogContext, setup_logging


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Unified observability middleware.

    Assigns the request id, opens the server span, binds the log context
    and records request metrics. Correlation headers are added to every
    response.
    """

    EXCLUDE_PATHS = {"/health", "/metrics", "/openapi.json", "/docs", "/redoc"}

    def __init__(
        self,
        app: ASGIApp,
        service_name: str = "modelrelay",
        exclude_paths: Optional[set] = None,
    ):
        super().__init__(app)
        self.service_name = service_name
        self.exclude_paths = exclude_paths or self.EXCLUDE_PATHS
        self.logger = get_logger("modelrelay.observability.middleware")

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        metrics = get_metrics()
        tracing = get_tracing_manager()

        headers = dict(request.headers)
        request_id = headers.get("x-request-id", "") or f"req_{uuid.uuid4().hex[:24]}"
        endpoint_group = self._get_endpoint_group(request.url.path)
        start_time = time.perf_counter()

        with tracing.start_server_span(
            name=f"{request.method} {endpoint_group}",
            headers=headers,
            attributes={
                "http.method": request.method,
                "http.route": endpoint_group,
                "http.target": request.url.path,
                "relay.request_id": request_id,
            },
        ) as span:
            trace_ctx = TraceContext.from_span(span)

            log_ctx = LogContext(
                request_id=request_id,
                trace_id=trace_ctx.trace_id,
                span_id=trace_ctx.span_id,
                endpoint=request.url.path,
            )
            LogContext.set_current(log_ctx)

            request.state.request_id = request_id
            request.state.trace_id = trace_ctx.trace_id
            request.state.log_context = log_ctx

            try:
                response = await call_next(request)
                duration_seconds = time.perf_counter() - start_time

                span.set_attribute("http.status_code", response.status_code)
                if response.status_code >= 500:
                    span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
                elif response.status_code < 400:
                    span.set_status(Status(StatusCode.OK))

                error_type = None
                if response.status_code >= 400:
                    error_type = response.headers.get("x-error-code", f"http_{response.status_code}")

                metrics.record_request(
                    endpoint=endpoint_group,
                    status_code=response.status_code,
                    duration_seconds=duration_seconds,
                    error_type=error_type,
                )
                self._log_request(request, response, duration_seconds * 1000)

                response.headers["X-Request-Id"] = request_id
                response.headers["X-Trace-Id"] = trace_ctx.trace_id
                return response

            except Exception as e:
                duration_seconds = time.perf_counter() - start_time
                tracing.record_exception(span, e)
                metrics.record_request(
                    endpoint=endpoint_group,
                    status_code=500,
                    duration_seconds=duration_seconds,
                    error_type=type(e).__name__,
                )
                self.logger.exception(
                    "Request failed with exception",
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=round(duration_seconds * 1000, 2),
                )
                raise

            finally:
                LogContext.clear()

    def _get_endpoint_group(self, path: str) -> str:
        """Group endpoints for metrics aggregation."""
        if path.startswith("/v1beta/models/"):
            return "/v1beta/models/{model}:generateContent"
        if path.startswith("/v1/fallback"):
            return "/v1/fallback"
        return path

    def _log_request(self, request: Request, response: Response, duration_ms: float):
        status_code = response.status_code
        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "winning_provider": response.headers.get("x-relay-provider", ""),
            "winning_model": response.headers.get("x-relay-model", ""),
        }

        if status_code >= 500:
            self.logger.error("Request completed with server error", **log_data)
        elif status_code >= 400:
            self.logger.warning("Request completed with client error", **log_data)
        else:
            self.logger.info("Request completed", **log_data)


_observability_initialized = False


def setup_observability(
    service_name: str = "modelrelay",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    log_level: str = "INFO",
    json_logs: bool = True,
    metrics_enabled: bool = True,
    tracing_enabled: bool = True,
) -> Dict[str, Any]:
    """
    Setup logging, metrics and tracing.

    Call once at application startup. Safe to call multiple times.

    Returns:
        Dict with initialized components ("logging", "metrics", "tracing")
    """
    global _observability_initialized

    result: Dict[str, Any] = {}

    setup_logging(level=log_level, json_output=json_logs)
    result["logging"] = True

    if metrics_enabled:
        try:
            result["metrics"] = setup_metrics()
        except ValueError as e:
            if "Duplicated timeseries" in str(e):
                result["metrics"] = get_metrics()
            else:
                raise

    if tracing_enabled:
        result["tracing"] = setup_tracing(
            service_name=service_name,
            service_version=service_version,
            otlp_endpoint=otlp_endpoint,
        )

    if not _observability_initialized:
        logger = get_logger("modelrelay.observability")
        logger.info(
            "Observability initialized",
            service_name=service_name,
            service_version=service_version,
            metrics_enabled=metrics_enabled,
            tracing_enabled=tracing_enabled,
            otlp_endpoint=otlp_endpoint or "none",
        )
        _observability_initialized = True

    return result
