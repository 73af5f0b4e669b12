"""
ModelRelay - Prometheus Metrics

Metrics collection with the Prometheus client library.

Metrics exposed:
- modelrelay_requests_total: Counter of inbound HTTP requests by endpoint, status
- modelrelay_request_duration_seconds: Histogram of inbound request latency
- modelrelay_dispatch_total: Counter of dispatches by virtual model and outcome
- modelrelay_attempts_total: Counter of backend attempts by provider, model, result
- modelrelay_attempt_duration_seconds: Histogram of backend attempt latency
- modelrelay_fallback_transitions_total: Counter of entry-to-entry fallbacks
- modelrelay_route_cache_total: Counter of sticky-route cache hits/misses/stale
- modelrelay_active_dispatches: Gauge of in-flight dispatches

Usage:
    from modelrelay.observability.metrics import get_metrics, metrics_endpoint

    metrics = get_metrics()
    metrics.record_attempt(provider="claude", model="claude-opus-4", result="fallback", duration_seconds=0.4)

    @app.get("/metrics")
    async def metrics():
        return metrics_endpoint()
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)
from fastapi import Response


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    Singleton per registry: collectors can only be registered once.
    """

    _instance: Optional["MetricsCollector"] = None
    _initialized_registries: set = set()

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize metrics collectors."""
        self.registry = registry

        registry_id = id(registry)
        if registry_id in MetricsCollector._initialized_registries:
            if MetricsCollector._instance is not None:
                self._copy_from(MetricsCollector._instance)
                return

        MetricsCollector._initialized_registries.add(registry_id)

        self.info = Info(
            "modelrelay",
            "ModelRelay service information",
            registry=registry,
        )
        self.info.info({
            "version": "1.0.0",
            "service": "modelrelay",
        })

        self.requests_total = Counter(
            "modelrelay_requests_total",
            "Total number of inbound requests",
            labelnames=["endpoint", "status", "error_type"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "modelrelay_request_duration_seconds",
            "Inbound request duration in seconds",
            labelnames=["endpoint"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        # outcome = succeeded/exhausted/bypassed
        self.dispatch_total = Counter(
            "modelrelay_dispatch_total",
            "Total fallback dispatches",
            labelnames=["virtual_model", "outcome"],
            registry=registry,
        )

        # result = success/fallback/timeout/transport_error/token_error
        self.attempts_total = Counter(
            "modelrelay_attempts_total",
            "Total backend attempts",
            labelnames=["provider", "model", "result"],
            registry=registry,
        )

        self.attempt_duration = Histogram(
            "modelrelay_attempt_duration_seconds",
            "Backend attempt duration in seconds",
            labelnames=["provider"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        self.fallback_transitions = Counter(
            "modelrelay_fallback_transitions_total",
            "Total transitions from one chain entry to the next",
            labelnames=["from_provider", "to_provider"],
            registry=registry,
        )

        # result = hit/miss/stale
        self.route_cache = Counter(
            "modelrelay_route_cache_total",
            "Sticky route cache lookups",
            labelnames=["result"],
            registry=registry,
        )

        self.active_dispatches = Gauge(
            "modelrelay_active_dispatches",
            "Number of in-flight fallback dispatches",
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None
        cls._initialized_registries.clear()

    def _copy_from(self, other: "MetricsCollector"):
        """Copy metrics references from another collector."""
        self.info = other.info
        self.requests_total = other.requests_total
        self.request_duration = other.request_duration
        self.dispatch_total = other.dispatch_total
        self.attempts_total = other.attempts_total
        self.attempt_duration = other.attempt_duration
        self.fallback_transitions = other.fallback_transitions
        self.route_cache = other.route_cache
        self.active_dispatches = other.active_dispatches

    def record_request(
        self,
        endpoint: str,
        status_code: int,
        duration_seconds: float,
        error_type: Optional[str] = None,
    ):
        """Record a completed inbound request."""
        self.requests_total.labels(
            endpoint=endpoint,
            status=str(status_code),
            error_type=error_type or "none",
        ).inc()
        self.request_duration.labels(endpoint=endpoint).observe(duration_seconds)

    def record_dispatch(self, virtual_model: str, outcome: str):
        """Record a finished dispatch."""
        self.dispatch_total.labels(virtual_model=virtual_model, outcome=outcome).inc()

    def record_attempt(
        self,
        provider: str,
        model: str,
        result: str,
        duration_seconds: float,
    ):
        """Record one backend attempt."""
        self.attempts_total.labels(provider=provider, model=model, result=result).inc()
        self.attempt_duration.labels(provider=provider).observe(duration_seconds)

    def record_fallback(self, from_provider: str, to_provider: str):
        """Record advancing from one chain entry to the next."""
        self.fallback_transitions.labels(
            from_provider=from_provider,
            to_provider=to_provider,
        ).inc()

    def record_route_cache(self, result: str):
        self.route_cache.labels(result=result).inc()

    def track_active_dispatch(self) -> "ActiveDispatchTracker":
        """Context manager to track in-flight dispatches."""
        return ActiveDispatchTracker(self)


class ActiveDispatchTracker:
    """Context manager for tracking in-flight dispatches."""

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def __enter__(self):
        self.collector.active_dispatches.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_dispatches.dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - returns existing instance.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    MetricsCollector._instance = _metrics_instance
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector.get_instance()
    return _metrics_instance


def metrics_endpoint() -> Response:
    """Generate Prometheus metrics endpoint response."""
    content = generate_latest(get_metrics().registry)
    return Response(
        content=content,
        media_type=CONTENT_TYPE_LATEST,
    )
