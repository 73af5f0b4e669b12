"""
ModelRelay - API Routes

Route modules for the proxy and management endpoints.
"""

from .fallback import router as fallback_router
from .proxy import router as proxy_router

__all__ = [
    "fallback_router",
    "proxy_router",
]
