"""
ModelRelay - Backend Tests

Tests for:
- Upstream request construction per format family
- httpx backend (mock transport)
- Token providers
- Stub backend scripting and passthrough
"""

import json

import httpx
import pytest

from modelrelay.backends import (
    BackendResponse,
    EnvTokenProvider,
    HttpBackend,
    PassthroughBackend,
    StaticTokenProvider,
    StubBackend,
    build_request,
)
from modelrelay.core.errors import (
    BackendUnavailableError,
    ModelNotRoutableError,
    TokenUnavailableError,
)
from modelrelay.core.formats import APIFormat
from modelrelay.fallback import FallbackEntry


CLAUDE_ENTRY = FallbackEntry(id="E1", provider="claude", model_id="claude-sonnet-4", priority=1)
GEMINI_ENTRY = FallbackEntry(id="E3", provider="gemini-cli", model_id="gemini-2.5-pro", priority=3)


# ============================================================
# Request construction
# ============================================================

class TestBuildRequest:
    """Tests for build_request."""

    def test_openai_request(self):
        path, headers, payload = build_request(APIFormat.OPENAI, "gpt-4o", {"model": "gpt-4o"}, "tok")
        assert path == "/v1/chat/completions"
        assert headers["Authorization"] == "Bearer tok"
        assert payload == {"model": "gpt-4o"}

    def test_anthropic_request_has_version_header(self):
        path, headers, _ = build_request(APIFormat.ANTHROPIC, "claude-sonnet-4", {})
        assert path == "/v1/messages"
        assert headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in headers

    def test_google_request_moves_model_to_path(self):
        body = {"model": "gemini-2.5-pro", "contents": []}
        path, _, payload = build_request(APIFormat.GOOGLE, "gemini-2.5-pro", body)
        assert path == "/v1beta/models/gemini-2.5-pro:generateContent"
        assert payload == {"contents": []}
        assert body["model"] == "gemini-2.5-pro"


# ============================================================
# HTTP backend
# ============================================================

class TestHttpBackend:
    """Tests for HttpBackend with a mock transport."""

    @pytest.mark.asyncio
    async def test_send_posts_to_provider_base_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(429, json={"error": {"message": "Rate limit exceeded"}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        backend = HttpBackend(
            base_url="http://upstream:8317/",
            base_urls={"claude": "http://claude-proxy:9000/"},
            token_provider=StaticTokenProvider({"claude": "secret"}),
            client=client,
        )

        response = await backend.send(CLAUDE_ENTRY, {"model": "claude-sonnet-4", "messages": []})
        await backend.close()

        assert seen["url"] == "http://claude-proxy:9000/v1/messages"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {"model": "claude-sonnet-4", "messages": []}
        assert response.status_code == 429
        assert response.reason_phrase == "Too Many Requests"
        assert "Rate limit exceeded" in response.text

    @pytest.mark.asyncio
    async def test_google_entry_uses_shared_base_url(self):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={"candidates": []})

        backend = HttpBackend(
            base_url="http://upstream:8317",
            token_provider=StaticTokenProvider(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        response = await backend.send(GEMINI_ENTRY, {"model": "gemini-2.5-pro", "contents": []})

        assert urls == ["http://upstream:8317/v1beta/models/gemini-2.5-pro:generateContent"]
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_transport_error_raises_backend_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = HttpBackend(
            token_provider=StaticTokenProvider(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.send(CLAUDE_ENTRY, {})

        assert exc_info.value.error.provider == "claude"
        assert "ConnectError" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_forward_uses_shared_upstream(self):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={"ok": True})

        backend = HttpBackend(
            base_url="http://upstream:8317",
            base_urls={"claude": "http://claude-proxy:9000"},
            token_provider=StaticTokenProvider(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        await backend.forward(APIFormat.ANTHROPIC, "claude-opus-4", {"model": "claude-opus-4"})

        assert urls == ["http://upstream:8317/v1/messages"]


# ============================================================
# Token providers
# ============================================================

class TestTokenProviders:
    """Tests for token providers."""

    @pytest.mark.asyncio
    async def test_env_provider_prefers_provider_token(self):
        provider = EnvTokenProvider({
            "RELAY_TOKEN_GITHUB_COPILOT": "copilot-token",
            "RELAY_UPSTREAM_API_KEY": "shared",
        })
        assert await provider.get_token("github-copilot") == "copilot-token"
        assert await provider.get_token("claude") == "shared"
        assert await provider.get_token("") == "shared"

    @pytest.mark.asyncio
    async def test_env_provider_without_token(self):
        assert await EnvTokenProvider({}).get_token("claude") is None

        with pytest.raises(TokenUnavailableError):
            await EnvTokenProvider({}, required=True).get_token("claude")

    @pytest.mark.asyncio
    async def test_static_provider_default(self):
        provider = StaticTokenProvider({"claude": "a"}, default="b")
        assert await provider.get_token("claude") == "a"
        assert await provider.get_token("codex") == "b"


# ============================================================
# Stub and passthrough
# ============================================================

class TestStubBackend:
    """Tests for StubBackend."""

    @pytest.mark.asyncio
    async def test_unscripted_success_matches_family(self):
        backend = StubBackend()

        claude = await backend.send(CLAUDE_ENTRY, {})
        gemini = await backend.send(GEMINI_ENTRY, {})

        assert json.loads(claude.body)["type"] == "message"
        assert "candidates" in json.loads(gemini.body)
        assert [(p, m) for p, m, _ in backend.calls] == [
            ("claude", "claude-sonnet-4"),
            ("gemini-cli", "gemini-2.5-pro"),
        ]

    @pytest.mark.asyncio
    async def test_scripted_sequence_repeats_last(self, rate_limited):
        ok = BackendResponse.from_json(200, {"ok": True})
        backend = StubBackend({"claude/claude-sonnet-4": [rate_limited, ok]})

        statuses = [(await backend.send(CLAUDE_ENTRY, {})).status_code for _ in range(3)]

        assert statuses == [429, 200, 200]

    @pytest.mark.asyncio
    async def test_passthrough_forwards_or_rejects(self):
        backend = StubBackend()

        response = await PassthroughBackend(backend).forward(APIFormat.OPENAI, "gpt-4o", {"model": "gpt-4o"})
        assert response.status_code == 200
        assert backend.calls[0][0] == "upstream"

        with pytest.raises(ModelNotRoutableError):
            await PassthroughBackend(backend, enabled=False).forward(APIFormat.OPENAI, "gpt-4o", {})

    def test_failure_response_shape(self):
        response = BackendResponse.failure(503, "down", "backend_unavailable", "claude")
        assert response.synthesized is True
        assert response.raw_text().startswith("HTTP/1.1 503 Service Unavailable\r\n\r\n")
        assert json.loads(response.body) == {"error": {
            "message": "down",
            "type": "upstream_error",
            "code": "backend_unavailable",
            "provider": "claude",
        }}
