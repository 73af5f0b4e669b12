"""
ModelRelay - Token Providers

Credentials come from an external auth service; the relay never acquires
or refreshes tokens itself. A TokenProvider hands out a usable token per
provider, or raises TokenUnavailableError.
"""

import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from ..core.errors import TokenUnavailableError


def provider_env_suffix(provider: str) -> str:
    """'github-copilot' -> 'GITHUB_COPILOT'"""
    return provider.strip().upper().replace("-", "_")


class TokenProvider(ABC):
    """Source of bearer tokens for outbound requests."""

    @abstractmethod
    async def get_token(self, provider: str) -> Optional[str]:
        """
        Token for a provider id; "" means the passthrough upstream.

        Returns None when the upstream needs no credential.

        Raises:
            TokenUnavailableError: If a credential is required but unavailable
        """
        pass


class StaticTokenProvider(TokenProvider):
    """Fixed tokens per provider, with an optional default."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None, default: Optional[str] = None, required: bool = False):
        self.tokens = dict(tokens or {})
        self.default = default
        self.required = required

    async def get_token(self, provider: str) -> Optional[str]:
        token = self.tokens.get(provider) or self.default
        if not token and self.required:
            raise TokenUnavailableError(provider or "upstream", "no token configured")
        return token or None


class EnvTokenProvider(TokenProvider):
    """
    Tokens from the environment.

    RELAY_TOKEN_<PROVIDER> (e.g. RELAY_TOKEN_GITHUB_COPILOT) wins, then
    RELAY_UPSTREAM_API_KEY.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None, required: bool = False):
        self.env = env if env is not None else os.environ
        self.required = required

    async def get_token(self, provider: str) -> Optional[str]:
        token = ""
        if provider:
            token = self.env.get(f"RELAY_TOKEN_{provider_env_suffix(provider)}", "").strip()
        if not token:
            token = self.env.get("RELAY_UPSTREAM_API_KEY", "").strip()
        if not token and self.required:
            raise TokenUnavailableError(provider or "upstream", "no token in environment")
        return token or None
