"""
ModelRelay - Fallback Settings Service

Owns the live FallbackConfiguration: loads it once from a ConfigStore,
serves immutable snapshots to readers and writes every mutation through
to the store before swapping the snapshot.

Mutations that change which entry a virtual model should use (chain
edits, removal, disabling) clear its sticky route; renames carry the
route over to the new name.
"""

import json
import threading
from typing import Callable, Optional, Union

from ..core.formats import Provider
from ..observability.logging import get_logger
from . import registry
from .models import FallbackConfiguration, FallbackEntry, VirtualModel, serialize_configuration
from .route_cache import RouteCache
from .store import ConfigStore

logger = get_logger(__name__)

Mutation = Callable[[FallbackConfiguration], Optional[FallbackConfiguration]]


class FallbackSettingsService:
    """Write-through owner of the fallback configuration."""

    def __init__(self, store: ConfigStore, route_cache: Optional[RouteCache] = None):
        self.store = store
        self.route_cache = route_cache or RouteCache()
        self._lock = threading.Lock()
        self._config = store.load()

    @property
    def configuration(self) -> FallbackConfiguration:
        """Current snapshot. Never mutated; replaced on every change."""
        return self._config

    def reload(self) -> FallbackConfiguration:
        with self._lock:
            self._config = self.store.load()
        return self._config

    def _mutate(self, mutation: Mutation) -> Optional[FallbackConfiguration]:
        """Apply a registry mutation, persist it, then publish it. None if rejected."""
        with self._lock:
            updated = mutation(self._config)
            if updated is None:
                return None
            self.store.save(updated)
            self._config = updated
        return updated

    # ============================================================
    # Configuration
    # ============================================================

    def set_enabled(self, enabled: bool) -> FallbackConfiguration:
        updated = self._mutate(lambda c: registry.set_fallback_enabled(c, enabled))
        if not enabled:
            self.route_cache.clear_all()
        logger.info("Fallback routing toggled", enabled=enabled)
        return updated

    # ============================================================
    # Virtual models
    # ============================================================

    def get_virtual_model(self, model_id: str) -> Optional[VirtualModel]:
        return registry.get_virtual_model(self._config, model_id)

    def find_virtual_model_by_name(self, name: str) -> Optional[VirtualModel]:
        return registry.find_virtual_model_by_name(self._config, name)

    def resolve(self, name: str) -> Optional[VirtualModel]:
        """Routable virtual model for a request's model name."""
        return registry.find_virtual_model(self._config, name)

    def lookup(self, ref: str) -> Optional[VirtualModel]:
        """Virtual model by id, falling back to a case-insensitive name match."""
        return self.get_virtual_model(ref) or self.find_virtual_model_by_name(ref)

    def add_virtual_model(self, name: str) -> Optional[VirtualModel]:
        updated = self._mutate(lambda c: registry.add_virtual_model(c, name))
        if updated is None:
            return None
        model = updated.virtual_models[-1]
        logger.info("Virtual model added", virtual_model=model.name, model_id=model.id)
        return model

    def remove_virtual_model(self, model_id: str) -> bool:
        existing = self.get_virtual_model(model_id)
        if self._mutate(lambda c: registry.remove_virtual_model(c, model_id)) is None:
            return False
        self.route_cache.clear_route_state(existing.name)
        logger.info("Virtual model removed", virtual_model=existing.name, model_id=model_id)
        return True

    def rename_virtual_model(self, model_id: str, new_name: str) -> bool:
        existing = self.get_virtual_model(model_id)
        updated = self._mutate(lambda c: registry.rename_virtual_model(c, model_id, new_name))
        if updated is None:
            return False
        renamed = registry.get_virtual_model(updated, model_id)
        self.route_cache.rename(existing.name, renamed.name)
        logger.info("Virtual model renamed", old_name=existing.name, new_name=renamed.name)
        return True

    def toggle_virtual_model(self, model_id: str) -> bool:
        updated = self._mutate(lambda c: registry.toggle_virtual_model(c, model_id))
        if updated is None:
            return False
        model = registry.get_virtual_model(updated, model_id)
        if not model.is_enabled:
            self.route_cache.clear_route_state(model.name)
        logger.info("Virtual model toggled", virtual_model=model.name, enabled=model.is_enabled)
        return True

    def update_virtual_model(self, model: VirtualModel) -> bool:
        existing = self.get_virtual_model(model.id)
        if self._mutate(lambda c: registry.update_virtual_model(c, model)) is None:
            return False
        self.route_cache.clear_route_state(existing.name)
        self.route_cache.clear_route_state(model.name.strip())
        return True

    # ============================================================
    # Fallback entries
    # ============================================================

    def add_fallback_entry(
        self,
        model_id: str,
        provider: Union[Provider, str],
        model_name: str,
    ) -> Optional[FallbackEntry]:
        updated = self._mutate(lambda c: registry.add_fallback_entry(c, model_id, provider, model_name))
        if updated is None:
            return None
        model = registry.get_virtual_model(updated, model_id)
        entry = model.sorted_entries()[-1]
        self.route_cache.clear_route_state(model.name)
        logger.info(
            "Fallback entry added",
            virtual_model=model.name,
            provider=entry.provider,
            model=entry.model_id,
            priority=entry.priority,
        )
        return entry

    def remove_fallback_entry(self, model_id: str, entry_id: str) -> bool:
        updated = self._mutate(lambda c: registry.remove_fallback_entry(c, model_id, entry_id))
        if updated is None:
            return False
        model = registry.get_virtual_model(updated, model_id)
        self.route_cache.clear_route_state(model.name)
        logger.info("Fallback entry removed", virtual_model=model.name, entry_id=entry_id)
        return True

    def move_fallback_entry(self, model_id: str, from_index: int, to_index: int) -> bool:
        updated = self._mutate(lambda c: registry.move_fallback_entry(c, model_id, from_index, to_index))
        if updated is None:
            return False
        model = registry.get_virtual_model(updated, model_id)
        self.route_cache.clear_route_state(model.name)
        return True

    # ============================================================
    # Import / export
    # ============================================================

    def export_configuration(self) -> str:
        return serialize_configuration(self._config)

    def import_configuration(self, text: str) -> bool:
        """Replace the configuration with a JSON document. False if it is not a JSON object."""
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            logger.warning("Rejected fallback configuration import", error=str(e))
            return False
        if not isinstance(data, dict):
            logger.warning("Rejected fallback configuration import", error="not a JSON object")
            return False

        imported = FallbackConfiguration.from_dict(data)
        self._mutate(lambda c: imported)
        self.route_cache.clear_all()
        logger.info("Fallback configuration imported", virtual_models=len(imported.virtual_models))
        return True

    def reset_to_defaults(self) -> FallbackConfiguration:
        updated = self._mutate(lambda c: FallbackConfiguration())
        self.route_cache.clear_all()
        logger.info("Fallback configuration reset to defaults")
        return updated
