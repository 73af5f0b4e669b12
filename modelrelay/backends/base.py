"""
ModelRelay - Backend Base

Outbound boundary. A Backend sends an already-translated request body to
the provider/model of one fallback entry and returns the raw upstream
response; it never interprets the response.

Backends raise:
- TokenUnavailableError when no credential could be obtained
- BackendUnavailableError when the transport failed
The dispatcher turns both into failure responses that drive fallback.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Optional

from ..core.errors import ModelNotRoutableError
from ..core.formats import APIFormat
from ..fallback.models import FallbackEntry


@dataclass
class BackendResponse:
    """Raw upstream response, returned to the caller verbatim."""
    status_code: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    reason: str = ""
    synthesized: bool = False  # True when produced locally for a transport/token failure

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def media_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return "application/json"

    @property
    def reason_phrase(self) -> str:
        if self.reason:
            return self.reason
        try:
            return HTTPStatus(self.status_code).phrase
        except ValueError:
            return ""

    def raw_text(self) -> str:
        """The response as raw HTTP text (status line, blank line, body)."""
        return f"HTTP/1.1 {self.status_code} {self.reason_phrase}\r\n\r\n{self.text}"

    @classmethod
    def from_json(cls, status_code: int, payload: Any, synthesized: bool = False) -> "BackendResponse":
        return cls(
            status_code=status_code,
            body=json.dumps(payload).encode("utf-8"),
            headers={"content-type": "application/json"},
            synthesized=synthesized,
        )

    @classmethod
    def failure(cls, status_code: int, message: str, code: str, provider: str = "") -> "BackendResponse":
        """Locally synthesized failure response."""
        error = {"message": message, "type": "upstream_error", "code": code}
        if provider:
            error["provider"] = provider
        return cls.from_json(status_code, {"error": error}, synthesized=True)


class Backend(ABC):
    """
    Abstract outbound transport.

    Implementations must let asyncio.CancelledError propagate so an
    abandoned inbound request aborts the in-flight upstream call.
    """

    name: str = "backend"

    @abstractmethod
    async def send(self, entry: FallbackEntry, body: Dict[str, Any]) -> BackendResponse:
        """
        Send a translated request to the entry's provider.

        Args:
            entry: Fallback entry being attempted
            body: Request body in the entry's format family, model already set

        Returns:
            The upstream response, whatever its status
        """
        pass

    async def forward(self, api_format: APIFormat, model: str, body: Dict[str, Any]) -> BackendResponse:
        """Send an untranslated request for a non-virtual model name."""
        raise ModelNotRoutableError(model)

    async def close(self):
        """Release transport resources."""
        pass


class PassthroughBackend:
    """
    Forwards requests whose model is not a virtual model.

    The body is sent unmodified to the upstream that serves the literal
    model name. When passthrough is disabled such requests are rejected.
    """

    def __init__(self, backend: Backend, enabled: bool = True):
        self.backend = backend
        self.enabled = enabled

    async def forward(self, api_format: APIFormat, model: str, body: Dict[str, Any]) -> BackendResponse:
        if not self.enabled:
            raise ModelNotRoutableError(model)
        return await self.backend.forward(api_format, model, body)
