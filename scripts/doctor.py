"""Environment compatibility and preflight checks for running the relay."""

from __future__ import annotations

import json
import os
import socket
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from modelrelay.config import RunMode, load_settings

MIN_PYTHON = (3, 10)
MAX_PYTHON = (3, 13)


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


def _python_version_tuple() -> Tuple[int, int, int]:
    v = sys.version_info
    return (v.major, v.minor, v.micro)


def _check_python_version(errors: List[str]) -> None:
    current = _python_version_tuple()
    if current[:2] < MIN_PYTHON or current[:2] > MAX_PYTHON:
        errors.append(
            f"Python {current[0]}.{current[1]} is unsupported. "
            f"Use Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]} to {MAX_PYTHON[0]}.{MAX_PYTHON[1]}."
        )


def _check_settings(env: Mapping[str, str], errors: List[str], warnings: List[str]):
    """MODE and numeric settings. Returns the loaded settings, or None when invalid."""
    try:
        settings = load_settings(env)
    except ValueError as exc:
        errors.append(str(exc))
        return None

    if settings.mode == RunMode.PROD and settings.use_stub_backends:
        errors.append("USE_STUB_BACKENDS=true is not allowed with MODE=prod.")

    if settings.attempt_timeout > settings.chain_budget:
        message = (
            f"RELAY_ATTEMPT_TIMEOUT ({settings.attempt_timeout:g}s) exceeds "
            f"RELAY_CHAIN_BUDGET ({settings.chain_budget:g}s); only one attempt can run."
        )
        if settings.mode == RunMode.PROD:
            errors.append(message)
        else:
            warnings.append(message)

    if settings.mode == RunMode.LOCAL and not settings.use_stub_backends:
        has_token = env.get("RELAY_UPSTREAM_API_KEY", "").strip() or any(
            key.startswith("RELAY_TOKEN_") and value.strip() for key, value in env.items()
        )
        if not has_token:
            warnings.append(
                "MODE=local: no upstream token configured. Use `USE_STUB_BACKENDS=true` "
                "or set RELAY_UPSTREAM_API_KEY."
            )

    return settings


def _check_config_file(path: Path, errors: List[str], warnings: List[str]) -> None:
    if not path.exists():
        warnings.append(f"No fallback configuration at {path}; defaults will be used.")
        parent = path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        if not os.access(parent, os.W_OK):
            errors.append(f"Cannot create {path}: {parent} is not writable.")
        return

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        errors.append(f"Cannot read fallback configuration {path}: {exc}")
        return
    except ValueError as exc:
        errors.append(f"Fallback configuration {path} is not valid JSON: {exc}")
        return

    if not isinstance(data, dict):
        errors.append(f"Fallback configuration {path} must be a JSON object.")
        return

    if not os.access(path, os.W_OK):
        warnings.append(f"Fallback configuration {path} is read-only; edits will fail.")


def _check_port_binding(host: str, port: int, errors: List[str]) -> None:
    bind_host = "127.0.0.1" if host in {"0.0.0.0", "localhost", ""} else host
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_host, port))
    except OSError as exc:
        errors.append(
            f"PORT/HOST conflict: cannot bind {bind_host}:{port} ({exc}). "
            "Pick a free port, e.g. `PORT=8010 modelrelay serve`."
        )
    finally:
        sock.close()


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    env_map: Mapping[str, str] = os.environ if env is None else env
    errors: List[str] = []
    warnings: List[str] = []

    _check_python_version(errors)
    settings = _check_settings(env_map, errors, warnings)
    if settings is not None:
        _check_config_file(settings.fallback_config_path, errors, warnings)
        _check_port_binding(settings.host, settings.port, errors)

    messages: List[str] = []
    if errors:
        messages.append("Doctor found configuration issues:")
        for i, msg in enumerate(errors, 1):
            messages.append(f"{i}. {msg}")
        messages.append("Fix the items above and rerun `python scripts/doctor.py`.")
    else:
        messages.append("Doctor checks passed.")

    if warnings:
        messages.append("Warnings:")
        for i, msg in enumerate(warnings, 1):
            messages.append(f"- {msg}")

    return DoctorResult(ok=not errors, messages=messages)


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
