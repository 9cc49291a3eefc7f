from __future__ import annotations

import copy
import threading
import time
from typing import Any, Callable, Dict, Tuple

from flask import current_app


CacheKey = Tuple[str, str, str]

_MISSING = object()

EXTENSION_KEY = "backoffice_cache"


class TtlCache:
    """In-process TTL cache keyed by (entity_type, tenant, scope).

    The clock is injectable so expiry can be driven deterministically.
    Values are deep-copied on the way in and out.
    """

    def __init__(self, clock: Callable[[], float] | None = None, default_ttl_seconds: int = 300) -> None:
        self._clock = clock or time.monotonic
        self.default_ttl_seconds = max(1, int(default_ttl_seconds))
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, Dict[str, Any]] = {}

    @staticmethod
    def key(entity_type: str, tenant: str, scope: str = "all") -> CacheKey:
        return (str(entity_type), str(tenant), str(scope))

    def get(self, entity_type: str, tenant: str, scope: str = "all", default: Any = None) -> Any:
        value = self._lookup(self.key(entity_type, tenant, scope))
        return default if value is _MISSING else value

    def contains(self, entity_type: str, tenant: str, scope: str = "all") -> bool:
        return self._lookup(self.key(entity_type, tenant, scope)) is not _MISSING

    def set(
        self,
        entity_type: str,
        tenant: str,
        scope: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else max(1, int(ttl_seconds))
        with self._lock:
            self._entries[self.key(entity_type, tenant, scope)] = {
                "expires_at": self._clock() + ttl,
                "value": copy.deepcopy(value),
            }

    def get_or_load(
        self,
        entity_type: str,
        tenant: str,
        scope: str,
        loader: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> Any:
        value = self._lookup(self.key(entity_type, tenant, scope))
        if value is not _MISSING:
            return value
        value = loader()
        self.set(entity_type, tenant, scope, value, ttl_seconds=ttl_seconds)
        return value

    def invalidate(self, entity_type: str, tenant: str, scope: str | None = None) -> int:
        with self._lock:
            if scope is not None:
                return 1 if self._entries.pop(self.key(entity_type, tenant, scope), None) is not None else 0
            doomed = [key for key in self._entries if key[0] == entity_type and key[1] == str(tenant)]
            for key in doomed:
                self._entries.pop(key, None)
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _lookup(self, cache_key: CacheKey) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                return _MISSING
            if float(entry["expires_at"]) <= now:
                self._entries.pop(cache_key, None)
                return _MISSING
            return copy.deepcopy(entry["value"])


def init_cache(app, clock: Callable[[], float] | None = None) -> TtlCache:
    cache = TtlCache(clock=clock, default_ttl_seconds=int(app.config.get("CACHE_LIST_TTL_SECONDS", 300) or 300))
    app.extensions[EXTENSION_KEY] = cache
    return cache


def get_cache() -> TtlCache:
    return current_app.extensions[EXTENSION_KEY]
