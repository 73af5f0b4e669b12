"""
ModelRelay - API Layer

Provides:
- Provider-shaped proxy endpoints routed through fallback chains
- Fallback configuration management
"""

from .dependencies import (
    RelayServices,
    get_services,
    set_services_getter,
    get_settings_service,
    add_standard_headers,
)
from .models import (
    SetEnabledRequest,
    CreateVirtualModelRequest,
    UpdateVirtualModelRequest,
    AddFallbackEntryRequest,
    MoveFallbackEntryRequest,
)
from .routes import fallback_router, proxy_router


__all__ = [
    # Routers
    "fallback_router",
    "proxy_router",
    # Dependencies
    "RelayServices",
    "get_services",
    "set_services_getter",
    "get_settings_service",
    "add_standard_headers",
    # Request models
    "SetEnabledRequest",
    "CreateVirtualModelRequest",
    "UpdateVirtualModelRequest",
    "AddFallbackEntryRequest",
    "MoveFallbackEntryRequest",
]
