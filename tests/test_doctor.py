"""Tests for preflight doctor checks."""

from __future__ import annotations

import socket

import pytest

import scripts.doctor as doctor
from scripts.doctor import run_doctor


def _free_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture(autouse=True)
def supported_python(monkeypatch):
    monkeypatch.setattr(doctor, "_python_version_tuple", lambda: (3, 12, 0))


@pytest.fixture
def base_env(tmp_path):
    return {
        "PORT": str(_free_port()),
        "HOST": "127.0.0.1",
        "RELAY_FALLBACK_CONFIG": str(tmp_path / "fallback-config.json"),
    }


def test_doctor_passes_in_local_stub_mode(base_env) -> None:
    result = run_doctor({**base_env, "MODE": "local", "USE_STUB_BACKENDS": "true"})
    assert result.ok is True
    assert result.messages[0] == "Doctor checks passed."
    assert any("No fallback configuration" in m for m in result.messages)


def test_doctor_rejects_stub_backends_in_prod(base_env) -> None:
    result = run_doctor({**base_env, "MODE": "prod", "USE_STUB_BACKENDS": "true"})
    assert result.ok is False
    joined = "\n".join(result.messages)
    assert "USE_STUB_BACKENDS" in joined
    assert "python scripts/doctor.py" in joined


def test_doctor_reports_invalid_mode(base_env) -> None:
    result = run_doctor({**base_env, "MODE": "staging"})
    assert result.ok is False
    assert "Invalid MODE" in "\n".join(result.messages)


def test_doctor_timeout_over_budget_is_warning_outside_prod(base_env) -> None:
    env = {
        **base_env,
        "MODE": "test",
        "RELAY_ATTEMPT_TIMEOUT": "120",
        "RELAY_CHAIN_BUDGET": "60",
    }
    result = run_doctor(env)
    assert result.ok is True
    assert any("exceeds RELAY_CHAIN_BUDGET" in m for m in result.messages)

    prod = run_doctor({**env, "MODE": "prod"})
    assert prod.ok is False


def test_doctor_warns_local_mode_without_token(base_env) -> None:
    result = run_doctor({**base_env, "MODE": "local"})
    assert result.ok is True
    assert any("no upstream token" in m for m in result.messages)

    with_token = run_doctor({**base_env, "MODE": "local", "RELAY_TOKEN_CLAUDE": "tok"})
    assert not any("no upstream token" in m for m in with_token.messages)


def test_doctor_rejects_malformed_config_file(base_env, tmp_path) -> None:
    path = tmp_path / "fallback-config.json"
    path.write_text("{not json", encoding="utf-8")

    result = run_doctor({**base_env, "MODE": "test"})

    assert result.ok is False
    assert "not valid JSON" in "\n".join(result.messages)


def test_doctor_rejects_non_object_config_file(base_env, tmp_path) -> None:
    (tmp_path / "fallback-config.json").write_text("[]", encoding="utf-8")
    result = run_doctor({**base_env, "MODE": "test"})
    assert result.ok is False
    assert "must be a JSON object" in "\n".join(result.messages)


def test_doctor_reports_busy_port(base_env) -> None:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        port = sock.getsockname()[1]
        result = run_doctor({**base_env, "MODE": "test", "PORT": str(port)})
    finally:
        sock.close()

    assert result.ok is False
    assert "PORT/HOST conflict" in "\n".join(result.messages)


def test_doctor_rejects_unsupported_python(base_env, monkeypatch) -> None:
    monkeypatch.setattr(doctor, "_python_version_tuple", lambda: (3, 9, 0))
    result = run_doctor({**base_env, "MODE": "test"})
    assert result.ok is False
    assert "Python 3.9 is unsupported" in "\n".join(result.messages)
