"""
ModelRelay - Core Module

Format families, provider map and the error taxonomy.
"""

from .formats import (
    APIFormat,
    Provider,
    get_api_format,
    get_default_max_tokens_param,
    get_provider_display_name,
    parse_provider,
)
from .errors import (
    ErrorType,
    ErrorDetails,
    RelayException,
    InfraError,
    SemanticError,
    ConfigurationError,
    BackendUnavailableError,
    TokenUnavailableError,
    InvalidRequestError,
    VirtualModelNotFoundError,
    FallbackEntryNotFoundError,
    DuplicateVirtualModelError,
    ModelNotRoutableError,
)

__all__ = [
    # Formats
    "APIFormat",
    "Provider",
    "get_api_format",
    "get_default_max_tokens_param",
    "get_provider_display_name",
    "parse_provider",
    # Errors
    "ErrorType",
    "ErrorDetails",
    "RelayException",
    "InfraError",
    "SemanticError",
    "ConfigurationError",
    "BackendUnavailableError",
    "TokenUnavailableError",
    "InvalidRequestError",
    "VirtualModelNotFoundError",
    "FallbackEntryNotFoundError",
    "DuplicateVirtualModelError",
    "ModelNotRoutableError",
]
