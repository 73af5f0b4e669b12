"""
ModelRelay - Fallback Dispatcher

Routes one request through a virtual model's fallback chain:

    RESOLVING -> ROUTING -> SUCCEEDED | EXHAUSTED
    (or BYPASSED when the model name is not a routable virtual model)

Entries are tried one at a time in ascending priority, never in parallel,
starting at the sticky-cached entry when there is one. The chain never
wraps: after the last entry the last real failure response is returned.

Transport failures and per-attempt timeouts become synthesized 503
responses, token failures synthesized 401 responses; both advance the
chain like any upstream error. Cancellation is not caught: it aborts the
in-flight attempt and ends the dispatch.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from opentelemetry.trace import Status, StatusCode

from ..backends.base import Backend, BackendResponse
from ..core.errors import BackendUnavailableError, TokenUnavailableError
from ..core.formats import APIFormat
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import get_metrics
from ..observability.tracing import get_tracing_manager
from ..translation.detector import detect_format
from ..translation.translator import convert_body
from .classifier import should_trigger_fallback
from .models import FallbackConfiguration, FallbackEntry
from .registry import find_virtual_model
from .route_cache import RouteCache

logger = get_logger(__name__)

DEFAULT_ATTEMPT_TIMEOUT = 60.0
DEFAULT_CHAIN_BUDGET = 300.0


class DispatchOutcome(str, Enum):
    BYPASSED = "bypassed"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class AttemptRecord:
    """Record of one chain entry attempt."""
    entry: FallbackEntry
    index: int
    status_code: int
    triggered_fallback: bool
    duration_ms: int
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Result of one dispatch."""
    outcome: DispatchOutcome
    response: Optional[BackendResponse] = None
    virtual_model_name: Optional[str] = None
    entry: Optional[FallbackEntry] = None  # winning entry, or the last one tried
    attempts: List[AttemptRecord] = field(default_factory=list)
    started_from_cache: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome == DispatchOutcome.SUCCEEDED


class FallbackDispatcher:
    """
    Sequential fallback dispatcher.

    Args:
        config_provider: Returns the current configuration snapshot
        backend: Outbound transport
        route_cache: Sticky-route cache shared with the settings service
        attempt_timeout: Upper bound for one attempt, in seconds
        chain_budget: Upper bound for the whole chain, in seconds
    """

    def __init__(
        self,
        config_provider: Callable[[], FallbackConfiguration],
        backend: Backend,
        route_cache: Optional[RouteCache] = None,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        chain_budget: float = DEFAULT_CHAIN_BUDGET,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config_provider = config_provider
        self.backend = backend
        self.route_cache = route_cache or RouteCache()
        self.attempt_timeout = attempt_timeout
        self.chain_budget = chain_budget
        self._clock = clock

    def _starting_index(self, virtual_model_name: str, entries: List[FallbackEntry]) -> Tuple[int, bool]:
        """Index of the cached entry when it is still in the chain, else 0."""
        cached_id = self.route_cache.get_cached_entry_id(virtual_model_name)
        if cached_id is None:
            get_metrics().record_route_cache("miss")
            return 0, False

        for index, entry in enumerate(entries):
            if entry.id == cached_id:
                get_metrics().record_route_cache("hit")
                return index, True

        # Chain was edited since the entry was cached
        self.route_cache.clear_cached_entry_id(virtual_model_name)
        get_metrics().record_route_cache("stale")
        return 0, False

    async def dispatch(
        self,
        model_name: str,
        body: Dict[str, Any],
        source_format: Optional[APIFormat] = None,
    ) -> DispatchResult:
        """
        Dispatch a request addressed to `model_name`.

        Args:
            model_name: Model name from the inbound request
            body: Inbound request body; not modified
            source_format: Family of the body, or None to classify it

        Returns:
            DispatchResult; BYPASSED carries no response
        """
        config = self.config_provider()
        model = find_virtual_model(config, model_name)
        if model is None or not model.fallback_entries:
            return DispatchResult(outcome=DispatchOutcome.BYPASSED)

        entries = model.sorted_entries()
        start_index, from_cache = self._starting_index(model.name, entries)
        source = source_format or detect_format(body)

        metrics = get_metrics()
        tracing = get_tracing_manager()

        log_ctx = LogContext.get_current()
        if log_ctx:
            log_ctx.update(virtual_model=model.name)

        logger.info(
            "Dispatching to fallback chain",
            virtual_model=model.name,
            chain_length=len(entries),
            start_index=start_index,
            started_from_cache=from_cache,
            source_format=source.value,
        )

        result = DispatchResult(
            outcome=DispatchOutcome.EXHAUSTED,
            virtual_model_name=model.name,
            started_from_cache=from_cache,
        )

        with metrics.track_active_dispatch(), tracing.start_span(
            "fallback.dispatch",
            attributes={
                "relay.virtual_model": model.name,
                "relay.chain_length": len(entries),
                "relay.start_index": start_index,
                "relay.started_from_cache": from_cache,
            },
        ) as span:
            deadline = self._clock() + self.chain_budget

            for index in range(start_index, len(entries)):
                entry = entries[index]
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning(
                        "Fallback chain budget spent",
                        virtual_model=model.name,
                        chain_budget=self.chain_budget,
                        untried=len(entries) - index,
                    )
                    break

                if index > start_index:
                    metrics.record_fallback(entries[index - 1].provider, entry.provider)

                response, record = await self._attempt(
                    entry, index, body, source, min(self.attempt_timeout, remaining)
                )
                result.attempts.append(record)
                result.response = response
                result.entry = entry

                if not record.triggered_fallback:
                    result.outcome = DispatchOutcome.SUCCEEDED
                    self.route_cache.set_cached_entry_id(model.name, entry.id)
                    self.route_cache.update_route_state(model.name, index, entry, len(entries))
                    break

            span.set_attribute("relay.outcome", result.outcome.value)
            span.set_attribute("relay.attempts", len(result.attempts))

            if result.succeeded:
                span.set_status(Status(StatusCode.OK))
                logger.info(
                    "Fallback dispatch succeeded",
                    virtual_model=model.name,
                    provider=result.entry.provider,
                    model=result.entry.model_id,
                    attempts=len(result.attempts),
                )
            else:
                span.set_status(Status(StatusCode.ERROR, "fallback chain exhausted"))
                self.route_cache.clear_cached_entry_id(model.name)
                if result.response is None:
                    result.response = BackendResponse.failure(
                        503, "Fallback chain budget spent before any attempt", "chain_budget_exhausted"
                    )
                logger.warning(
                    "Fallback chain exhausted",
                    virtual_model=model.name,
                    attempts=len(result.attempts),
                    last_status=result.response.status_code,
                )

        metrics.record_dispatch(model.name, result.outcome.value)
        return result

    async def _attempt(
        self,
        entry: FallbackEntry,
        index: int,
        body: Dict[str, Any],
        source: APIFormat,
        timeout: float,
    ) -> Tuple[BackendResponse, AttemptRecord]:
        """Translate, send and classify one entry."""
        metrics = get_metrics()
        tracing = get_tracing_manager()

        log_ctx = LogContext.get_current()
        if log_ctx:
            log_ctx.update(provider=entry.provider, model=entry.model_id)

        translated = convert_body(body, source, entry.api_format)
        translated["model"] = entry.model_id

        error = None
        failure = None
        start = time.perf_counter()

        with tracing.start_client_span(
            "fallback.attempt",
            attributes={
                "relay.provider": entry.provider,
                "relay.model": entry.model_id,
                "relay.entry_index": index,
                "relay.target_format": entry.api_format.value,
            },
        ) as span:
            try:
                response = await asyncio.wait_for(self.backend.send(entry, translated), timeout=timeout)
            except asyncio.TimeoutError:
                error = f"attempt timed out after {timeout:.1f}s"
                failure = "timeout"
                response = BackendResponse.failure(503, error, "attempt_timeout", entry.provider)
            except TokenUnavailableError as e:
                error = e.error.message
                failure = "token_error"
                response = BackendResponse.failure(401, error, e.error.code, entry.provider)
            except BackendUnavailableError as e:
                error = e.error.message
                failure = "transport_error"
                response = BackendResponse.failure(503, error, e.error.code, entry.provider)

            duration = time.perf_counter() - start
            triggered = should_trigger_fallback(response.raw_text())

            span.set_attribute("http.status_code", response.status_code)
            span.set_attribute("relay.triggered_fallback", triggered)
            if triggered:
                span.set_status(Status(StatusCode.ERROR, error or f"HTTP {response.status_code}"))

        result = failure or ("fallback" if triggered else "success")
        metrics.record_attempt(entry.provider, entry.model_id, result, duration)

        log = logger.warning if triggered else logger.debug
        log(
            "Fallback attempt finished",
            provider=entry.provider,
            model=entry.model_id,
            entry_index=index,
            status_code=response.status_code,
            triggered_fallback=triggered,
            duration_ms=round(duration * 1000, 2),
            error=error,
        )

        return response, AttemptRecord(
            entry=entry,
            index=index,
            status_code=response.status_code,
            triggered_fallback=triggered,
            duration_ms=int(duration * 1000),
            error=error,
        )
