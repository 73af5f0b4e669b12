"""
ModelRelay - Backends

Outbound transports used by the fallback dispatcher.
"""

from .base import Backend, BackendResponse, PassthroughBackend
from .http_backend import HttpBackend, build_request
from .stub_backend import StubBackend, stub_success
from .tokens import EnvTokenProvider, StaticTokenProvider, TokenProvider

__all__ = [
    "Backend",
    "BackendResponse",
    "PassthroughBackend",
    "HttpBackend",
    "build_request",
    "StubBackend",
    "stub_success",
    "EnvTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
]
