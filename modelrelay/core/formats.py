"""
ModelRelay - Format Families and Providers

Static, pure mapping of backend providers to the three request format
families (OpenAI-style, Anthropic-style, Google-style).
"""

from enum import Enum
from typing import Dict, Union


class APIFormat(str, Enum):
    """Request/response format family."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class Provider(str, Enum):
    """Known backend providers."""
    GEMINI = "gemini-cli"
    CLAUDE = "claude"
    CODEX = "codex"
    QWEN = "qwen"
    IFLOW = "iflow"
    ANTIGRAVITY = "antigravity"
    VERTEX = "vertex"
    KIRO = "kiro"
    COPILOT = "github-copilot"
    CURSOR = "cursor"
    TRAE = "trae"
    GLM = "glm"


# ============================================================
# Static lookup tables
# ============================================================

PROVIDER_FORMATS: Dict[Provider, APIFormat] = {
    Provider.CLAUDE: APIFormat.ANTHROPIC,
    # Kiro receives Anthropic-shaped requests through the upstream proxy
    Provider.KIRO: APIFormat.ANTHROPIC,
    Provider.CODEX: APIFormat.OPENAI,
    Provider.COPILOT: APIFormat.OPENAI,
    Provider.CURSOR: APIFormat.OPENAI,
    Provider.TRAE: APIFormat.OPENAI,
    Provider.QWEN: APIFormat.OPENAI,
    Provider.IFLOW: APIFormat.OPENAI,
    Provider.GLM: APIFormat.OPENAI,
    Provider.GEMINI: APIFormat.GOOGLE,
    Provider.VERTEX: APIFormat.GOOGLE,
    Provider.ANTIGRAVITY: APIFormat.GOOGLE,
}

PROVIDER_DISPLAY_NAMES: Dict[Provider, str] = {
    Provider.GEMINI: "Gemini CLI",
    Provider.CLAUDE: "Claude Code",
    Provider.CODEX: "Codex (OpenAI)",
    Provider.QWEN: "Qwen Code",
    Provider.IFLOW: "iFlow",
    Provider.ANTIGRAVITY: "Antigravity",
    Provider.VERTEX: "Vertex AI",
    Provider.KIRO: "Kiro",
    Provider.COPILOT: "GitHub Copilot",
    Provider.CURSOR: "Cursor",
    Provider.TRAE: "Trae",
    Provider.GLM: "GLM",
}

_PROVIDER_ALIASES: Dict[str, Provider] = {
    "copilot": Provider.COPILOT,
    "gemini": Provider.GEMINI,
}


def parse_provider(value: Union[Provider, str, None]) -> Union[Provider, None]:
    """
    Resolve a provider id string to a known Provider.

    Returns None for unknown providers; callers that need a format
    should use get_api_format(), which defaults unknown ids to OpenAI.
    """
    if value is None:
        return None
    if isinstance(value, Provider):
        return value
    key = str(value).strip().lower()
    try:
        return Provider(key)
    except ValueError:
        return _PROVIDER_ALIASES.get(key)


def get_api_format(provider: Union[Provider, str]) -> APIFormat:
    """Get the format family for a provider. Unknown providers are OpenAI-style."""
    resolved = parse_provider(provider)
    if resolved is None:
        return APIFormat.OPENAI
    return PROVIDER_FORMATS.get(resolved, APIFormat.OPENAI)


def get_default_max_tokens_param(api_format: APIFormat) -> str:
    """Canonical max-tokens parameter name for a format family."""
    if api_format == APIFormat.GOOGLE:
        return "maxOutputTokens"
    return "max_tokens"


def get_provider_display_name(provider: Union[Provider, str]) -> str:
    resolved = parse_provider(provider)
    if resolved is None:
        return str(provider)
    return PROVIDER_DISPLAY_NAMES[resolved]
