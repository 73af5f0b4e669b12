"""
ModelRelay - Fallback Module

Virtual models, their fallback chains and the services around them.

The dispatcher lives in modelrelay.fallback.dispatcher and is imported
from there, since it depends on the backends package.
"""

from .classifier import (
    should_fallback_on_body,
    should_fallback_on_status,
    should_trigger_fallback,
    should_trigger_fallback_for,
)
from .models import (
    CACHE_EXPIRATION_SECONDS,
    CachedEntryInfo,
    FallbackConfiguration,
    FallbackEntry,
    FallbackRouteState,
    VirtualModel,
    deserialize_configuration,
    is_cache_valid,
    serialize_configuration,
)
from .route_cache import RouteCache
from .settings import FallbackSettingsService
from .store import ConfigStore, InMemoryConfigStore, JsonFileConfigStore, default_config_path

__all__ = [
    "should_fallback_on_body",
    "should_fallback_on_status",
    "should_trigger_fallback",
    "should_trigger_fallback_for",
    "CACHE_EXPIRATION_SECONDS",
    "CachedEntryInfo",
    "FallbackConfiguration",
    "FallbackEntry",
    "FallbackRouteState",
    "VirtualModel",
    "deserialize_configuration",
    "is_cache_valid",
    "serialize_configuration",
    "RouteCache",
    "FallbackSettingsService",
    "ConfigStore",
    "InMemoryConfigStore",
    "JsonFileConfigStore",
    "default_config_path",
]
