"""
ModelRelay - Error Definitions

Error taxonomy with infra vs semantic classification.

Upstream failures during a fallback dispatch are not raised: they are
ordinary responses that drive the chain forward. The exceptions below
cover the relay's own surfaces (management API, configuration, bypass
without an upstream, backend transport).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information for API response."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None
    param: Optional[str] = None
    request_id: str = ""

    # Recovery fields
    retryable: bool = False
    retry_after: Optional[int] = None
    fallback_attempted: Optional[bool] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.param:
            result["param"] = self.param
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.fallback_attempted is not None:
            result["fallback_attempted"] = self.fallback_attempted
        if self.details:
            result["details"] = self.details

        return {"error": result}


class RelayException(Exception):
    """Base exception for all ModelRelay errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Infra Errors
# ============================================================

class InfraError(RelayException):
    """Base class for infrastructure errors."""
    pass


class ConfigurationError(InfraError):
    """Persisted fallback configuration could not be read or written."""

    def __init__(self, message: str, path: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="configuration_error",
                message=message,
                type=ErrorType.INFRA,
                request_id=request_id,
                retryable=False,
                details={"path": path} if path else {}
            ),
            status_code=500
        )


class BackendUnavailableError(InfraError):
    """Backend transport failed before any response was received."""

    def __init__(self, provider: str, reason: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="backend_unavailable",
                message=f"{provider} backend is unavailable" + (f": {reason}" if reason else ""),
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=5
            ),
            status_code=503
        )


class TokenUnavailableError(InfraError):
    """No usable credential could be obtained for a backend."""

    def __init__(self, provider: str, reason: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="token_unavailable",
                message=f"No access token available for {provider}" + (f": {reason}" if reason else ""),
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True
            ),
            status_code=401
        )


# ============================================================
# Semantic Errors (client must fix request)
# ============================================================

class SemanticError(RelayException):
    """Base class for semantic errors (client must fix request)."""
    pass


class InvalidRequestError(SemanticError):
    """Request validation failed."""

    def __init__(
        self,
        message: str,
        param: str = "",
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=message,
                type=ErrorType.SEMANTIC,
                param=param or None,
                request_id=request_id,
                retryable=False
            ),
            status_code=400
        )


class VirtualModelNotFoundError(SemanticError):
    """No virtual model with the given id or name."""

    def __init__(self, model: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="virtual_model_not_found",
                message=f"Virtual model '{model}' not found",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
                details={"virtual_model": model}
            ),
            status_code=404
        )


class FallbackEntryNotFoundError(SemanticError):
    """No fallback entry with the given id or index."""

    def __init__(self, model: str, entry: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="fallback_entry_not_found",
                message=f"Fallback entry '{entry}' not found in '{model}'",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
                details={"virtual_model": model, "entry": entry}
            ),
            status_code=404
        )


class DuplicateVirtualModelError(SemanticError):
    """A virtual model with the same name (case-insensitive) already exists."""

    def __init__(self, name: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="duplicate_virtual_model",
                message=f"Virtual model '{name}' already exists",
                type=ErrorType.SEMANTIC,
                param="name",
                request_id=request_id,
                retryable=False
            ),
            status_code=409
        )


class ModelNotRoutableError(SemanticError):
    """Model is not a virtual model and no passthrough upstream is configured."""

    def __init__(self, model: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="model_not_routable",
                message=f"Model '{model}' is not an enabled virtual model and passthrough is disabled",
                type=ErrorType.SEMANTIC,
                param="model",
                request_id=request_id,
                retryable=False,
                details={"requested_model": model}
            ),
            status_code=404
        )
