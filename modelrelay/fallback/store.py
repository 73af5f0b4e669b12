"""
ModelRelay - Fallback Configuration Store

Load/save boundary for the persisted fallback configuration document.

The document is shared with other tools, so reads are tolerant (a
missing, unreadable or malformed file loads as the default, disabled
configuration) and writes are atomic (temp file + replace).
"""

import contextlib
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from ..core.errors import ConfigurationError
from ..observability.logging import TimedOperation, get_logger
from .models import FallbackConfiguration, deserialize_configuration, serialize_configuration

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/modelrelay/fallback-config.json")


def default_config_path() -> Path:
    """Config path from RELAY_FALLBACK_CONFIG, else the per-user default."""
    override = os.getenv("RELAY_FALLBACK_CONFIG", "").strip()
    return Path(override or DEFAULT_CONFIG_PATH).expanduser()


class ConfigStore(ABC):
    """Persistence for a FallbackConfiguration."""

    @abstractmethod
    def load(self) -> FallbackConfiguration:
        """Load the configuration. Must not raise for bad content."""
        pass

    @abstractmethod
    def save(self, config: FallbackConfiguration) -> None:
        """
        Persist the configuration.

        Raises:
            ConfigurationError: If the configuration could not be written
        """
        pass


class InMemoryConfigStore(ConfigStore):
    """Store that keeps the configuration in memory (tests, ephemeral runs)."""

    def __init__(self, config: Optional[FallbackConfiguration] = None):
        self.config = config or FallbackConfiguration()
        self.save_count = 0

    def load(self) -> FallbackConfiguration:
        return self.config

    def save(self, config: FallbackConfiguration) -> None:
        self.config = config
        self.save_count += 1


class JsonFileConfigStore(ConfigStore):
    """Store backed by a JSON document on disk."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path).expanduser() if path else default_config_path()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> FallbackConfiguration:
        if not self.path.exists():
            logger.info("No fallback configuration found, using defaults", path=str(self.path))
            return FallbackConfiguration()

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Could not read fallback configuration, using defaults",
                path=str(self.path),
                error=str(e),
            )
            return FallbackConfiguration()

        config = deserialize_configuration(text)
        logger.info(
            "Loaded fallback configuration",
            path=str(self.path),
            enabled=config.is_enabled,
            virtual_models=len(config.virtual_models),
        )
        return config

    def save(self, config: FallbackConfiguration) -> None:
        payload = serialize_configuration(config)
        temp_path = self._temp_path()

        with TimedOperation("save_fallback_configuration", logger, extra={"path": str(self.path)}):
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with temp_path.open("w", encoding="utf-8") as handle:
                    handle.write(payload)
                temp_path.replace(self.path)
            except OSError as e:
                with contextlib.suppress(OSError):
                    temp_path.unlink(missing_ok=True)
                raise ConfigurationError(
                    f"Could not write fallback configuration: {e}",
                    path=str(self.path),
                ) from e

    def _temp_path(self) -> Path:
        return self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
