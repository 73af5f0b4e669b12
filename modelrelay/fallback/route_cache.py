"""
ModelRelay - Route Cache

Sticky routing: remembers the last successful entry of each virtual model
for CACHE_EXPIRATION_SECONDS, so the next dispatch starts there instead
of re-trying entries that just failed. Also keeps the latest route state
per virtual model for display.

Both maps are keyed by virtual model name and live in memory only.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

from .models import CachedEntryInfo, FallbackEntry, FallbackRouteState, is_cache_valid


class RouteCache:
    """Thread-safe sticky-route cache."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CachedEntryInfo] = {}
        self._states: Dict[str, FallbackRouteState] = {}

    # ============================================================
    # Cached entry ids
    # ============================================================

    def get_cached_entry_id(self, virtual_model_name: str) -> Optional[str]:
        """Cached entry id, or None. Expired entries are evicted on read."""
        with self._lock:
            cached = self._entries.get(virtual_model_name)
            if cached is None:
                return None
            if not is_cache_valid(cached, now=self._clock()):
                del self._entries[virtual_model_name]
                return None
            return cached.entry_id

    def set_cached_entry_id(self, virtual_model_name: str, entry_id: str):
        with self._lock:
            self._entries[virtual_model_name] = CachedEntryInfo(entry_id=entry_id, cached_at=self._clock())

    def clear_cached_entry_id(self, virtual_model_name: str):
        with self._lock:
            self._entries.pop(virtual_model_name, None)

    # ============================================================
    # Route states
    # ============================================================

    def update_route_state(
        self,
        virtual_model_name: str,
        entry_index: int,
        entry: FallbackEntry,
        total_entries: int,
    ) -> FallbackRouteState:
        state = FallbackRouteState(
            virtual_model_name=virtual_model_name,
            current_entry_index=entry_index,
            current_entry=entry,
            total_entries=total_entries,
            last_updated=self._clock(),
        )
        with self._lock:
            self._states[virtual_model_name] = state
        return state

    def get_route_state(self, virtual_model_name: str) -> Optional[FallbackRouteState]:
        with self._lock:
            return self._states.get(virtual_model_name)

    def get_all_route_states(self) -> List[FallbackRouteState]:
        with self._lock:
            states = list(self._states.values())
        return sorted(states, key=lambda s: s.virtual_model_name)

    def clear_route_state(self, virtual_model_name: str):
        """Forget both the route state and the cached entry of a virtual model."""
        with self._lock:
            self._states.pop(virtual_model_name, None)
            self._entries.pop(virtual_model_name, None)

    def rename(self, old_name: str, new_name: str):
        """Carry the cache and route state of a renamed virtual model."""
        with self._lock:
            cached = self._entries.pop(old_name, None)
            if cached is not None:
                self._entries[new_name] = cached
            state = self._states.pop(old_name, None)
            if state is not None:
                self._states[new_name] = FallbackRouteState(
                    virtual_model_name=new_name,
                    current_entry_index=state.current_entry_index,
                    current_entry=state.current_entry,
                    total_entries=state.total_entries,
                    last_updated=state.last_updated,
                )

    def clear_all(self):
        with self._lock:
            self._states.clear()
            self._entries.clear()
