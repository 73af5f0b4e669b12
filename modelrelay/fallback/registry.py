"""
ModelRelay - Fallback Chain Registry

Pure operations over FallbackConfiguration. Every mutation returns a new
configuration, or None when it is rejected (unknown id, empty or
duplicate name, index out of range); a rejected call changes nothing.

Virtual model names are unique case-insensitively. Chain priorities are
always a dense 1..N sequence after a mutation.
"""

from dataclasses import replace
from typing import List, Optional, Tuple, Union

from ..core.formats import Provider, parse_provider
from .models import FallbackConfiguration, FallbackEntry, VirtualModel, new_id, reprice


def _model_index(config: FallbackConfiguration, model_id: str) -> Optional[int]:
    for index, model in enumerate(config.virtual_models):
        if model.id == model_id:
            return index
    return None


def _name_taken(config: FallbackConfiguration, name: str, exclude_id: Optional[str] = None) -> bool:
    folded = name.casefold()
    return any(
        m.name.casefold() == folded and m.id != exclude_id
        for m in config.virtual_models
    )


def _clean_name(name) -> str:
    return name.strip() if isinstance(name, str) else ""


def _provider_id(provider: Union[Provider, str]) -> str:
    resolved = parse_provider(provider)
    return resolved.value if resolved else str(provider).strip()


def _with_model(config: FallbackConfiguration, index: int, model: VirtualModel) -> FallbackConfiguration:
    models = list(config.virtual_models)
    models[index] = model
    return replace(config, virtual_models=tuple(models))


# ============================================================
# Configuration
# ============================================================

def set_fallback_enabled(config: FallbackConfiguration, enabled: bool) -> FallbackConfiguration:
    return replace(config, is_enabled=bool(enabled))


# ============================================================
# Virtual models
# ============================================================

def add_virtual_model(config: FallbackConfiguration, name: str) -> Optional[FallbackConfiguration]:
    """Append an enabled virtual model with an empty chain."""
    name = _clean_name(name)
    if not name or _name_taken(config, name):
        return None
    model = VirtualModel(id=new_id(), name=name)
    return replace(config, virtual_models=config.virtual_models + (model,))


def remove_virtual_model(config: FallbackConfiguration, model_id: str) -> Optional[FallbackConfiguration]:
    index = _model_index(config, model_id)
    if index is None:
        return None
    models = config.virtual_models[:index] + config.virtual_models[index + 1:]
    return replace(config, virtual_models=models)


def rename_virtual_model(
    config: FallbackConfiguration,
    model_id: str,
    new_name: str,
) -> Optional[FallbackConfiguration]:
    index = _model_index(config, model_id)
    name = _clean_name(new_name)
    if index is None or not name or _name_taken(config, name, exclude_id=model_id):
        return None
    return _with_model(config, index, replace(config.virtual_models[index], name=name))


def toggle_virtual_model(config: FallbackConfiguration, model_id: str) -> Optional[FallbackConfiguration]:
    index = _model_index(config, model_id)
    if index is None:
        return None
    model = config.virtual_models[index]
    return _with_model(config, index, replace(model, is_enabled=not model.is_enabled))


def update_virtual_model(config: FallbackConfiguration, model: VirtualModel) -> Optional[FallbackConfiguration]:
    """Replace a virtual model by id. The chain is re-priced; the name must stay unique."""
    index = _model_index(config, model.id)
    name = _clean_name(model.name)
    if index is None or not name or _name_taken(config, name, exclude_id=model.id):
        return None
    updated = replace(model, name=name, fallback_entries=reprice(model.fallback_entries))
    return _with_model(config, index, updated)


# ============================================================
# Fallback entries
# ============================================================

def add_fallback_entry(
    config: FallbackConfiguration,
    model_id: str,
    provider: Union[Provider, str],
    model_name: str,
) -> Optional[FallbackConfiguration]:
    """Append an entry at priority max + 1 (1 for an empty chain)."""
    index = _model_index(config, model_id)
    model_name = _clean_name(model_name)
    provider_id = _provider_id(provider) if provider else ""
    if index is None or not model_name or not provider_id:
        return None

    model = config.virtual_models[index]
    priority = max((e.priority for e in model.fallback_entries), default=0) + 1
    entry = FallbackEntry(id=new_id(), provider=provider_id, model_id=model_name, priority=priority)
    return _with_model(config, index, replace(model, fallback_entries=model.fallback_entries + (entry,)))


def remove_fallback_entry(
    config: FallbackConfiguration,
    model_id: str,
    entry_id: str,
) -> Optional[FallbackConfiguration]:
    index = _model_index(config, model_id)
    if index is None:
        return None
    model = config.virtual_models[index]
    if model.get_entry(entry_id) is None:
        return None
    remaining = [e for e in model.fallback_entries if e.id != entry_id]
    return _with_model(config, index, replace(model, fallback_entries=reprice(remaining)))


def move_fallback_entry(
    config: FallbackConfiguration,
    model_id: str,
    from_index: int,
    to_index: int,
) -> Optional[FallbackConfiguration]:
    """Move the entry at from_index (in priority order) to to_index; both 0-based."""
    index = _model_index(config, model_id)
    if index is None:
        return None
    model = config.virtual_models[index]
    entries = model.sorted_entries()
    if not (0 <= from_index < len(entries)) or not (0 <= to_index < len(entries)):
        return None

    moved = entries.pop(from_index)
    entries.insert(to_index, moved)
    renumbered = tuple(replace(e, priority=i) for i, e in enumerate(entries, start=1))
    return _with_model(config, index, replace(model, fallback_entries=renumbered))


# ============================================================
# Lookups
# ============================================================

def find_virtual_model(config: FallbackConfiguration, name: str) -> Optional[VirtualModel]:
    """Exact-name lookup among enabled models of an enabled configuration."""
    if not config.is_enabled:
        return None
    for model in config.virtual_models:
        if model.name == name and model.is_enabled:
            return model
    return None


def get_virtual_model(config: FallbackConfiguration, model_id: str) -> Optional[VirtualModel]:
    index = _model_index(config, model_id)
    return config.virtual_models[index] if index is not None else None


def find_virtual_model_by_name(config: FallbackConfiguration, name: str) -> Optional[VirtualModel]:
    """Case-insensitive lookup regardless of enabled flags, for management surfaces."""
    folded = name.strip().casefold()
    for model in config.virtual_models:
        if model.name.casefold() == folded:
            return model
    return None


def is_virtual_model(config: FallbackConfiguration, name: str) -> bool:
    return find_virtual_model(config, name) is not None


def get_enabled_virtual_model_names(config: FallbackConfiguration) -> List[str]:
    return [m.name for m in config.virtual_models if m.is_enabled]


def locate_entry(model: VirtualModel, entry_id: str) -> Optional[Tuple[int, FallbackEntry]]:
    """(index in priority order, entry) for an entry id."""
    for index, entry in enumerate(model.sorted_entries()):
        if entry.id == entry_id:
            return index, entry
    return None
