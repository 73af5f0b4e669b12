"""
ModelRelay - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Shared fixtures: configurations, stores, stub backends
"""

import os
import pytest
from typing import Optional

from modelrelay.backends import BackendResponse, StubBackend
from modelrelay.fallback import (
    FallbackConfiguration,
    FallbackEntry,
    FallbackSettingsService,
    InMemoryConfigStore,
    RouteCache,
    VirtualModel,
)


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )
    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Fallback fixtures
# ============================================================

class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain_entries():
    """Three-entry chain spanning all three format families."""
    return (
        FallbackEntry(id="E1", provider="claude", model_id="claude-sonnet-4", priority=1),
        FallbackEntry(id="E2", provider="github-copilot", model_id="gpt-4o", priority=2),
        FallbackEntry(id="E3", provider="gemini-cli", model_id="gemini-2.5-pro", priority=3),
    )


@pytest.fixture
def fallback_config(chain_entries):
    """Enabled configuration with one virtual model named smart-model."""
    return FallbackConfiguration(
        is_enabled=True,
        virtual_models=(
            VirtualModel(id="VM1", name="smart-model", fallback_entries=chain_entries),
        ),
    )


@pytest.fixture
def memory_store(fallback_config):
    return InMemoryConfigStore(fallback_config)


@pytest.fixture
def route_cache():
    return RouteCache()


@pytest.fixture
def settings_service(memory_store, route_cache):
    return FallbackSettingsService(memory_store, route_cache)


@pytest.fixture
def stub_backend():
    return StubBackend()


@pytest.fixture
def rate_limited():
    """Upstream 429 response."""
    return BackendResponse.from_json(
        429, {"error": {"message": "Rate limit exceeded", "type": "rate_limit_error"}}
    )


@pytest.fixture
def server_error():
    """Upstream 500 response."""
    return BackendResponse.from_json(
        500, {"error": {"message": "Internal server error", "type": "server_error"}}
    )
