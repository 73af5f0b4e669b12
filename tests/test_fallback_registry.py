"""
ModelRelay - Fallback Chain Tests

Tests for:
- Fallback model serialization and tolerant loading
- Registry mutations (dense priorities, unique names, rejected calls)
- Error classification
- Sticky route cache
"""

import json
import random

import pytest

from modelrelay.fallback import (
    CACHE_EXPIRATION_SECONDS,
    CachedEntryInfo,
    FallbackConfiguration,
    FallbackEntry,
    FallbackRouteState,
    RouteCache,
    VirtualModel,
    deserialize_configuration,
    is_cache_valid,
    serialize_configuration,
    should_trigger_fallback,
    should_trigger_fallback_for,
)
from modelrelay.fallback import registry
from modelrelay.fallback.classifier import parse_status_code


def _priorities(model: VirtualModel):
    return sorted(e.priority for e in model.fallback_entries)


# ============================================================
# Models
# ============================================================

class TestFallbackModels:
    """Tests for fallback model types and their JSON form."""

    def test_entry_display_name(self, chain_entries):
        assert chain_entries[0].display_name == "Claude Code → claude-sonnet-4"
        assert chain_entries[1].display_name == "GitHub Copilot → gpt-4o"

    def test_serialize_uses_camel_case(self, fallback_config):
        data = json.loads(serialize_configuration(fallback_config))

        assert data["isEnabled"] is True
        model = data["virtualModels"][0]
        assert model["name"] == "smart-model"
        assert model["isEnabled"] is True
        assert model["fallbackEntries"][0] == {
            "id": "E1",
            "provider": "claude",
            "modelId": "claude-sonnet-4",
            "priority": 1,
        }

    def test_round_trip(self, fallback_config):
        text = serialize_configuration(fallback_config)
        assert deserialize_configuration(text) == fallback_config

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]", "null", "42"])
    def test_unreadable_document_loads_default(self, text):
        assert deserialize_configuration(text) == FallbackConfiguration()

    def test_malformed_entries_dropped_and_repriced(self):
        text = json.dumps({
            "isEnabled": True,
            "virtualModels": [{
                "id": "VM1",
                "name": "smart-model",
                "fallbackEntries": [
                    {"id": "A", "provider": "claude", "modelId": "m1", "priority": 3},
                    {"id": "B", "provider": "claude", "priority": 1},
                    {"id": "C", "provider": "codex", "modelId": "m2", "priority": 7},
                ],
            }],
        })

        model = deserialize_configuration(text).virtual_models[0]

        assert [(e.id, e.priority) for e in model.fallback_entries] == [("A", 1), ("C", 2)]
        assert model.is_enabled is True

    def test_malformed_models_dropped(self):
        text = json.dumps({
            "isEnabled": "yes",
            "virtualModels": [
                {"id": "VM1", "name": "ok", "fallbackEntries": []},
                {"id": "VM2", "fallbackEntries": []},
                {"id": "VM3", "name": "no-chain"},
            ],
        })

        config = deserialize_configuration(text)

        assert config.is_enabled is False
        assert [m.name for m in config.virtual_models] == ["ok"]

    def test_duplicate_names_dropped_case_insensitively(self):
        text = json.dumps({
            "isEnabled": True,
            "virtualModels": [
                {"id": "A", "name": "Opus", "fallbackEntries": []},
                {"id": "B", "name": "opus", "fallbackEntries": []},
                {"id": "C", "name": "sonnet", "fallbackEntries": []},
            ],
        })

        config = deserialize_configuration(text)

        assert [(m.id, m.name) for m in config.virtual_models] == [("A", "Opus"), ("C", "sonnet")]

    def test_cache_validity_boundary(self):
        cached = CachedEntryInfo(entry_id="E1", cached_at=1000.0)
        assert is_cache_valid(cached, now=1000.0 + CACHE_EXPIRATION_SECONDS - 1)
        assert not is_cache_valid(cached, now=1000.0 + CACHE_EXPIRATION_SECONDS)

    def test_route_state_strings(self, chain_entries):
        state = FallbackRouteState(
            virtual_model_name="smart-model",
            current_entry_index=1,
            current_entry=chain_entries[1],
            total_entries=3,
            last_updated=5.0,
        )
        assert state.progress_string == "2/3"
        assert state.display_string == "GitHub Copilot → gpt-4o"
        assert state.to_dict()["currentEntry"]["modelId"] == "gpt-4o"


# ============================================================
# Registry
# ============================================================

class TestRegistryVirtualModels:
    """Tests for virtual model mutations."""

    def test_add_virtual_model(self):
        config = registry.add_virtual_model(FallbackConfiguration(), "  fast  ")
        model = config.virtual_models[0]
        assert model.name == "fast"
        assert model.is_enabled is True
        assert model.fallback_entries == ()

    def test_duplicate_name_rejected_case_insensitively(self, fallback_config):
        assert registry.add_virtual_model(fallback_config, "SMART-MODEL") is None

        config = registry.add_virtual_model(FallbackConfiguration(), "Opus")
        assert registry.add_virtual_model(config, "opus") is None

    def test_blank_name_rejected(self, fallback_config):
        assert registry.add_virtual_model(fallback_config, "   ") is None

    def test_rename_to_own_name_allowed(self, fallback_config):
        config = registry.rename_virtual_model(fallback_config, "VM1", "Smart-Model")
        assert config.virtual_models[0].name == "Smart-Model"

    def test_rename_unknown_returns_none(self, fallback_config):
        assert registry.rename_virtual_model(fallback_config, "nope", "x") is None

    def test_toggle_and_remove(self, fallback_config):
        toggled = registry.toggle_virtual_model(fallback_config, "VM1")
        assert toggled.virtual_models[0].is_enabled is False

        removed = registry.remove_virtual_model(toggled, "VM1")
        assert removed.virtual_models == ()
        assert registry.remove_virtual_model(removed, "VM1") is None

    def test_mutations_do_not_touch_input(self, fallback_config):
        registry.toggle_virtual_model(fallback_config, "VM1")
        registry.set_fallback_enabled(fallback_config, False)
        assert fallback_config.is_enabled is True
        assert fallback_config.virtual_models[0].is_enabled is True


class TestRegistryEntries:
    """Tests for fallback chain mutations."""

    def test_add_entry_appends_at_next_priority(self, fallback_config):
        config = registry.add_fallback_entry(fallback_config, "VM1", "copilot", "gpt-4.1")
        entry = config.virtual_models[0].sorted_entries()[-1]
        assert entry.priority == 4
        assert entry.provider == "github-copilot"
        assert entry.model_id == "gpt-4.1"

    def test_add_entry_requires_model_id(self, fallback_config):
        assert registry.add_fallback_entry(fallback_config, "VM1", "claude", " ") is None
        assert registry.add_fallback_entry(fallback_config, "VM1", "", "m") is None

    def test_remove_entry_renumbers(self, fallback_config):
        config = registry.remove_fallback_entry(fallback_config, "VM1", "E2")
        entries = config.virtual_models[0].sorted_entries()
        assert [(e.id, e.priority) for e in entries] == [("E1", 1), ("E3", 2)]

    def test_remove_unknown_entry_returns_none(self, fallback_config):
        assert registry.remove_fallback_entry(fallback_config, "VM1", "E9") is None

    def test_move_entry(self, fallback_config):
        config = registry.move_fallback_entry(fallback_config, "VM1", 2, 0)
        entries = config.virtual_models[0].sorted_entries()
        assert [(e.id, e.priority) for e in entries] == [("E3", 1), ("E1", 2), ("E2", 3)]

    @pytest.mark.parametrize("from_index,to_index", [(-1, 0), (0, 3), (3, 0), (0, -1)])
    def test_move_out_of_range_rejected(self, fallback_config, from_index, to_index):
        assert registry.move_fallback_entry(fallback_config, "VM1", from_index, to_index) is None

    def test_priorities_stay_dense_under_random_edits(self):
        rng = random.Random(7)
        config = registry.add_virtual_model(FallbackConfiguration(), "chain")
        model_id = config.virtual_models[0].id

        for step in range(200):
            model = registry.get_virtual_model(config, model_id)
            count = len(model.fallback_entries)
            action = rng.choice(["add", "add", "remove", "move"])
            if action == "add" or count == 0:
                config = registry.add_fallback_entry(config, model_id, "claude", f"m{step}")
            elif action == "remove":
                victim = rng.choice(model.fallback_entries)
                config = registry.remove_fallback_entry(config, model_id, victim.id)
            else:
                config = registry.move_fallback_entry(
                    config, model_id, rng.randrange(count), rng.randrange(count)
                )

            model = registry.get_virtual_model(config, model_id)
            assert _priorities(model) == list(range(1, len(model.fallback_entries) + 1))


class TestRegistryLookups:
    """Tests for virtual model lookups."""

    def test_find_requires_exact_name(self, fallback_config):
        assert registry.find_virtual_model(fallback_config, "smart-model").id == "VM1"
        assert registry.find_virtual_model(fallback_config, "Smart-Model") is None

    def test_find_respects_enabled_flags(self, fallback_config):
        disabled_model = registry.toggle_virtual_model(fallback_config, "VM1")
        assert registry.find_virtual_model(disabled_model, "smart-model") is None

        disabled_config = registry.set_fallback_enabled(fallback_config, False)
        assert registry.find_virtual_model(disabled_config, "smart-model") is None

    def test_management_lookup_is_case_insensitive(self, fallback_config):
        disabled = registry.toggle_virtual_model(fallback_config, "VM1")
        assert registry.find_virtual_model_by_name(disabled, " SMART-model ").id == "VM1"

    def test_enabled_names(self, fallback_config):
        config = registry.add_virtual_model(fallback_config, "other")
        other_id = config.virtual_models[-1].id
        config = registry.toggle_virtual_model(config, other_id)
        assert registry.get_enabled_virtual_model_names(config) == ["smart-model"]
        assert registry.is_virtual_model(config, "smart-model")
        assert not registry.is_virtual_model(config, "other")

    def test_is_virtual_model_off_when_fallback_disabled(self, fallback_config):
        assert registry.is_virtual_model(fallback_config, "smart-model")

        disabled = registry.set_fallback_enabled(fallback_config, False)
        assert not registry.is_virtual_model(disabled, "smart-model")

    def test_locate_entry(self, fallback_config):
        model = fallback_config.virtual_models[0]
        index, entry = registry.locate_entry(model, "E3")
        assert index == 2
        assert entry.model_id == "gemini-2.5-pro"
        assert registry.locate_entry(model, "missing") is None


# ============================================================
# Classifier
# ============================================================

class TestClassifier:
    """Tests for should_trigger_fallback."""

    @pytest.mark.parametrize("status", [400, 401, 403, 422, 429, 500, 503])
    def test_trigger_statuses(self, status):
        assert should_trigger_fallback(f"HTTP/1.1 {status} Error\r\n\r\n{{}}")

    def test_success_never_triggers(self):
        raw = 'HTTP/1.1 200 OK\r\n\r\n{"note": "rate limit reached yesterday"}'
        assert should_trigger_fallback(raw) is False
        assert should_trigger_fallback('HTTP/1.1 200 OK\r\n\r\n{"quota exceeded":false}') is False
        assert should_trigger_fallback("HTTP/1.1 429 Too Many Requests\r\n\r\n{}") is True

    def test_other_status_falls_back_to_body(self):
        assert should_trigger_fallback("HTTP/1.1 502 Bad Gateway\r\n\r\nmodel not found")
        assert not should_trigger_fallback("HTTP/1.1 404 Not Found\r\n\r\nnothing here")

    def test_body_match_without_status_line(self):
        assert should_trigger_fallback('{"error": "Quota Exceeded for today"}')
        assert not should_trigger_fallback('{"ok": true}')

    def test_lf_only_line_endings(self):
        assert parse_status_code("HTTP/1.1 429 Too Many Requests\n\n{}") == 429

    def test_unparseable_status(self):
        assert parse_status_code("garbage") is None
        assert parse_status_code("HTTP/1.1 abc") is None

    def test_parsed_response_variant(self):
        assert should_trigger_fallback_for(429)
        assert not should_trigger_fallback_for(200, "overloaded")
        assert should_trigger_fallback_for(504, "Server overloaded")
        assert not should_trigger_fallback_for(404, "")


# ============================================================
# Route cache
# ============================================================

class TestRouteCache:
    """Tests for the sticky route cache."""

    def test_cached_entry_expires(self, clock):
        cache = RouteCache(clock=clock)
        cache.set_cached_entry_id("smart-model", "E2")

        clock.advance(CACHE_EXPIRATION_SECONDS - 1)
        assert cache.get_cached_entry_id("smart-model") == "E2"

        clock.advance(1)
        assert cache.get_cached_entry_id("smart-model") is None

    def test_route_state_recorded(self, clock, chain_entries):
        cache = RouteCache(clock=clock)
        state = cache.update_route_state("smart-model", 1, chain_entries[1], 3)

        assert state.last_updated == clock.now
        assert cache.get_route_state("smart-model") == state
        assert cache.get_all_route_states() == [state]

    def test_clear_route_state_clears_cache_too(self, clock, chain_entries):
        cache = RouteCache(clock=clock)
        cache.set_cached_entry_id("smart-model", "E1")
        cache.update_route_state("smart-model", 0, chain_entries[0], 3)

        cache.clear_route_state("smart-model")

        assert cache.get_cached_entry_id("smart-model") is None
        assert cache.get_route_state("smart-model") is None

    def test_rename_carries_state(self, clock, chain_entries):
        cache = RouteCache(clock=clock)
        cache.set_cached_entry_id("old", "E1")
        cache.update_route_state("old", 0, chain_entries[0], 3)

        cache.rename("old", "new")

        assert cache.get_cached_entry_id("new") == "E1"
        assert cache.get_cached_entry_id("old") is None
        assert cache.get_route_state("new").virtual_model_name == "new"

    def test_clear_all(self, clock, chain_entries):
        cache = RouteCache(clock=clock)
        cache.set_cached_entry_id("a", "E1")
        cache.update_route_state("b", 0, chain_entries[0], 3)
        cache.clear_all()
        assert cache.get_all_route_states() == []
        assert cache.get_cached_entry_id("a") is None
