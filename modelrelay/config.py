"""
ModelRelay - Configuration

Environment-driven settings and startup safety checks.

Supports three modes:
- MODE=local: Development mode; stub backends allowed
- MODE=prod: Real upstreams only (default, fail closed)
- MODE=test: Deterministic test mode
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional

from .backends.http_backend import DEFAULT_UPSTREAM_BASE_URL
from .fallback.store import DEFAULT_CONFIG_PATH

BASE_URL_PREFIX = "RELAY_BASE_URL_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class RunMode(str, Enum):
    """Run mode."""

    LOCAL = "local"
    PROD = "prod"
    TEST = "test"


def parse_mode(value: Optional[str]) -> RunMode:
    """
    Parse MODE. Must be one of: local, prod/production, test.

    Default: prod (fail-closed default for safer deployments).
    """
    mode = (value or "prod").lower().strip()
    if mode in {"prod", "production"}:
        return RunMode.PROD
    if mode == "local":
        return RunMode.LOCAL
    if mode == "test":
        return RunMode.TEST
    raise ValueError("Invalid MODE. Use one of: local, prod, production, test")


def parse_bool(name: str, value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.lower().strip()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False if lowered else default
    raise ValueError(f"Invalid {name}: expected true/false, got {value!r}")


def parse_positive_float(name: str, value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: expected a number of seconds, got {value!r}") from None
    if not parsed > 0:
        raise ValueError(f"Invalid {name}: must be greater than zero")
    return parsed


def parse_port(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"Invalid PORT: {value!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Invalid PORT: {port} is out of range")
    return port


def provider_base_urls(env: Mapping[str, str]) -> Dict[str, str]:
    """RELAY_BASE_URL_GITHUB_COPILOT=... -> {"github-copilot": ...}"""
    urls = {}
    for key, value in env.items():
        if key.startswith(BASE_URL_PREFIX) and value.strip():
            provider = key[len(BASE_URL_PREFIX):].lower().replace("_", "-")
            urls[provider] = value.strip()
    return urls


@dataclass
class Settings:
    """Relay settings."""
    mode: RunMode = RunMode.PROD
    use_stub_backends: bool = False
    fallback_config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH.expanduser())
    attempt_timeout: float = 60.0
    chain_budget: float = 300.0
    upstream_base_url: str = DEFAULT_UPSTREAM_BASE_URL
    provider_base_urls: Dict[str, str] = field(default_factory=dict)
    passthrough: bool = True
    log_level: str = "INFO"
    log_format: str = "json"
    otlp_endpoint: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Load settings from the environment.

    Raises:
        ValueError: If any variable holds an invalid value
    """
    env = os.environ if env is None else env

    config_path = env.get("RELAY_FALLBACK_CONFIG", "").strip()
    log_format = env.get("LOG_FORMAT", "json").lower().strip() or "json"
    if log_format not in {"json", "text"}:
        raise ValueError("Invalid LOG_FORMAT. Use one of: json, text")

    return Settings(
        mode=parse_mode(env.get("MODE")),
        use_stub_backends=parse_bool("USE_STUB_BACKENDS", env.get("USE_STUB_BACKENDS"), False),
        fallback_config_path=Path(config_path or DEFAULT_CONFIG_PATH).expanduser(),
        attempt_timeout=parse_positive_float("RELAY_ATTEMPT_TIMEOUT", env.get("RELAY_ATTEMPT_TIMEOUT"), 60.0),
        chain_budget=parse_positive_float("RELAY_CHAIN_BUDGET", env.get("RELAY_CHAIN_BUDGET"), 300.0),
        upstream_base_url=env.get("RELAY_UPSTREAM_BASE_URL", "").strip() or DEFAULT_UPSTREAM_BASE_URL,
        provider_base_urls=provider_base_urls(env),
        passthrough=parse_bool("RELAY_PASSTHROUGH", env.get("RELAY_PASSTHROUGH"), True),
        log_level=env.get("LOG_LEVEL", "INFO").upper().strip() or "INFO",
        log_format=log_format,
        otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
        host=env.get("HOST", "127.0.0.1").strip() or "127.0.0.1",
        port=parse_port(env.get("PORT"), 8000),
    )


def validate_startup_config(settings: Settings) -> None:
    """Fail closed for unsafe production startup configuration."""
    if settings.mode in {RunMode.LOCAL, RunMode.TEST}:
        return

    if settings.use_stub_backends:
        raise RuntimeError("USE_STUB_BACKENDS is not allowed in production mode")

    if settings.attempt_timeout > settings.chain_budget:
        raise RuntimeError("RELAY_ATTEMPT_TIMEOUT cannot exceed RELAY_CHAIN_BUDGET in production mode")
