"""
ModelRelay - HTTP Backend

Posts translated requests to provider endpoints with httpx.

Each provider has a base URL (RELAY_BASE_URL_<PROVIDER>, else the shared
upstream base URL) and the path of its format family:
- OpenAI:    /v1/chat/completions
- Anthropic: /v1/messages
- Google:    /v1beta/models/{model}:generateContent
"""

from typing import Any, Dict, Optional

import httpx

from ..core.errors import BackendUnavailableError
from ..core.formats import APIFormat
from ..fallback.models import FallbackEntry
from ..observability.logging import get_logger
from .base import Backend, BackendResponse
from .tokens import EnvTokenProvider, TokenProvider

logger = get_logger(__name__)

DEFAULT_UPSTREAM_BASE_URL = "http://127.0.0.1:8317"
ANTHROPIC_VERSION = "2023-06-01"

FAMILY_PATHS: Dict[APIFormat, str] = {
    APIFormat.OPENAI: "/v1/chat/completions",
    APIFormat.ANTHROPIC: "/v1/messages",
    APIFormat.GOOGLE: "/v1beta/models/{model}:generateContent",
}


def build_request(
    api_format: APIFormat,
    model: str,
    body: Dict[str, Any],
    token: Optional[str] = None,
) -> tuple:
    """
    Build (path, headers, payload) for one upstream call.

    Google carries the model in the path, so it is removed from the payload.
    """
    payload = dict(body)
    if api_format == APIFormat.GOOGLE:
        payload.pop("model", None)
    path = FAMILY_PATHS[api_format].format(model=model)

    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if api_format == APIFormat.ANTHROPIC:
        headers["anthropic-version"] = ANTHROPIC_VERSION
    return path, headers, payload


class HttpBackend(Backend):
    """httpx-based backend for real upstreams."""

    name = "http"

    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_BASE_URL,
        base_urls: Optional[Dict[str, str]] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.base_urls = {k: v.rstrip("/") for k, v in (base_urls or {}).items()}
        self.token_provider = token_provider or EnvTokenProvider()
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def base_url_for(self, provider: str) -> str:
        return self.base_urls.get(provider, self.base_url)

    async def send(self, entry: FallbackEntry, body: Dict[str, Any]) -> BackendResponse:
        token = await self.token_provider.get_token(entry.provider)
        return await self._post(
            self.base_url_for(entry.provider), entry.provider, entry.api_format, entry.model_id, body, token
        )

    async def forward(self, api_format: APIFormat, model: str, body: Dict[str, Any]) -> BackendResponse:
        token = await self.token_provider.get_token("")
        return await self._post(self.base_url, "upstream", api_format, model, body, token)

    async def _post(
        self,
        base_url: str,
        provider: str,
        api_format: APIFormat,
        model: str,
        body: Dict[str, Any],
        token: Optional[str],
    ) -> BackendResponse:
        path, headers, payload = build_request(api_format, model, body, token)
        client = await self._get_client()

        logger.debug("Sending upstream request", provider=provider, model=model, url=f"{base_url}{path}")

        try:
            response = await client.post(f"{base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise BackendUnavailableError(provider, f"{type(e).__name__}: {e}") from e

        return BackendResponse(
            status_code=response.status_code,
            body=response.content,
            headers={"content-type": response.headers.get("content-type", "application/json")},
            reason=response.reason_phrase,
        )
