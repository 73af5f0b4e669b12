"""
ModelRelay - Fallback Models

Virtual models and their fallback chains.

A virtual model is a user-facing model name that resolves to an ordered
chain of real (provider, model) entries. Example "relay-opus" chain:
    1. Antigravity -> gemini-claude-opus-4-5-thinking
    2. Kiro -> kiro-claude-opus-4-5-agentic
    3. Claude Code -> claude-opus-4-5-thinking

All types are immutable; mutations live in registry.py and return new
configurations.
"""

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.formats import APIFormat, get_api_format, get_provider_display_name
from ..observability.logging import get_logger

logger = get_logger(__name__)

# A successful entry is remembered for 60 minutes.
CACHE_EXPIRATION_SECONDS = 3600


def new_id() -> str:
    return str(uuid.uuid4()).upper()


# ============================================================
# Fallback Entry
# ============================================================

@dataclass(frozen=True)
class FallbackEntry:
    """One (provider, model) step in a chain. Priority 1 is tried first."""
    id: str
    provider: str
    model_id: str
    priority: int

    @property
    def api_format(self) -> APIFormat:
        return get_api_format(self.provider)

    @property
    def display_name(self) -> str:
        return f"{get_provider_display_name(self.provider)} → {self.model_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "modelId": self.model_id,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["FallbackEntry"]:
        """Build an entry from its JSON form; None when the record is malformed."""
        if not isinstance(data, dict):
            return None
        entry_id = data.get("id")
        provider = data.get("provider")
        model_id = data.get("modelId")
        priority = data.get("priority")
        if not isinstance(entry_id, str) or not isinstance(provider, str) or not isinstance(model_id, str):
            return None
        if isinstance(priority, bool) or not isinstance(priority, int) or priority < 1:
            return None
        return cls(id=entry_id, provider=provider, model_id=model_id, priority=priority)


def reprice(entries: Iterable[FallbackEntry]) -> Tuple[FallbackEntry, ...]:
    """Sort by priority (stable) and renumber to a dense 1..N sequence."""
    ordered = sorted(entries, key=lambda e: e.priority)
    return tuple(
        entry if entry.priority == index else replace(entry, priority=index)
        for index, entry in enumerate(ordered, start=1)
    )


# ============================================================
# Virtual Model
# ============================================================

@dataclass(frozen=True)
class VirtualModel:
    """A named alias for a prioritized chain of fallback entries."""
    id: str
    name: str
    fallback_entries: Tuple[FallbackEntry, ...] = ()
    is_enabled: bool = True

    def sorted_entries(self) -> List[FallbackEntry]:
        return sorted(self.fallback_entries, key=lambda e: e.priority)

    def get_entry(self, entry_id: str) -> Optional[FallbackEntry]:
        for entry in self.fallback_entries:
            if entry.id == entry_id:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fallbackEntries": [e.to_dict() for e in self.sorted_entries()],
            "isEnabled": self.is_enabled,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["VirtualModel"]:
        """
        Build a virtual model from its JSON form.

        Returns None when id/name are missing or fallbackEntries is not a
        list. Malformed entries are dropped and the rest re-priced.
        """
        if not isinstance(data, dict):
            return None
        model_id = data.get("id")
        name = data.get("name")
        raw_entries = data.get("fallbackEntries")
        if not isinstance(model_id, str) or not isinstance(name, str) or not isinstance(raw_entries, list):
            return None

        entries = [FallbackEntry.from_dict(e) for e in raw_entries]
        valid = [e for e in entries if e is not None]
        if len(valid) != len(raw_entries):
            logger.warning(
                "Dropped malformed fallback entries",
                virtual_model=name,
                dropped=len(raw_entries) - len(valid),
            )

        is_enabled = data.get("isEnabled")
        return cls(
            id=model_id,
            name=name,
            fallback_entries=reprice(valid),
            is_enabled=is_enabled if isinstance(is_enabled, bool) else True,
        )


# ============================================================
# Fallback Configuration
# ============================================================

@dataclass(frozen=True)
class FallbackConfiguration:
    """Root aggregate. When is_enabled is False no request is routed."""
    is_enabled: bool = False
    virtual_models: Tuple[VirtualModel, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isEnabled": self.is_enabled,
            "virtualModels": [m.to_dict() for m in self.virtual_models],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FallbackConfiguration":
        if not isinstance(data, dict):
            return cls()

        is_enabled = data.get("isEnabled")
        raw_models = data.get("virtualModels")
        if not isinstance(raw_models, list):
            raw_models = []

        models: List[VirtualModel] = []
        seen = set()
        for raw in raw_models:
            model = VirtualModel.from_dict(raw)
            if model is None:
                continue
            # Names are unique case-insensitively; the first occurrence wins
            folded = model.name.casefold()
            if folded in seen:
                logger.warning(
                    "Dropped virtual model with duplicate name",
                    virtual_model=model.name,
                    model_id=model.id,
                )
                continue
            seen.add(folded)
            models.append(model)

        return cls(
            is_enabled=is_enabled if isinstance(is_enabled, bool) else False,
            virtual_models=tuple(models),
        )


def serialize_configuration(config: FallbackConfiguration) -> str:
    return json.dumps(config.to_dict(), indent=2, ensure_ascii=False)


def deserialize_configuration(text: str) -> FallbackConfiguration:
    """Parse a persisted document. Never raises; unreadable input yields the default."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        logger.warning("Invalid fallback configuration document, using defaults", error=str(e))
        return FallbackConfiguration()

    if not isinstance(data, dict):
        logger.warning("Fallback configuration is not a JSON object, using defaults")
        return FallbackConfiguration()

    return FallbackConfiguration.from_dict(data)


# ============================================================
# Runtime routing state
# ============================================================

@dataclass(frozen=True)
class CachedEntryInfo:
    """Last successful entry of a virtual model. cached_at is epoch seconds."""
    entry_id: str
    cached_at: float


def is_cache_valid(cached: CachedEntryInfo, now: Optional[float] = None) -> bool:
    if now is None:
        now = time.time()
    return now - cached.cached_at < CACHE_EXPIRATION_SECONDS


@dataclass(frozen=True)
class FallbackRouteState:
    """Where the last dispatch of a virtual model ended up. Not persisted."""
    virtual_model_name: str
    current_entry_index: int
    current_entry: FallbackEntry
    total_entries: int
    last_updated: float = field(default_factory=time.time)

    @property
    def display_string(self) -> str:
        return self.current_entry.display_name

    @property
    def progress_string(self) -> str:
        return f"{self.current_entry_index + 1}/{self.total_entries}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "virtualModelName": self.virtual_model_name,
            "currentEntryIndex": self.current_entry_index,
            "currentEntry": self.current_entry.to_dict(),
            "totalEntries": self.total_entries,
            "lastUpdated": self.last_updated,
            "display": self.display_string,
            "progress": self.progress_string,
        }
