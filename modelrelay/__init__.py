"""
ModelRelay - Cross-provider request translation and fallback dispatch.

Clients send one request to a virtual model; the relay translates it into
each backend's native format and walks a prioritized chain of
(provider, model) entries until one succeeds.
"""

__version__ = "1.0.0"
