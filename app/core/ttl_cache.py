from __future__ import annotations

import hashlib
import json
import threading
import time
from typing import Any, Protocol

from app.core.config import settings


def cache_key(prefix: str, data: Any) -> str:
    """Stable key for ``data`` under ``prefix`` (``prefix:sha256``)."""
    canonical = json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class TTLCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None: ...

    def clear(self, prefix: str | None = None) -> None: ...

    def purge_expired(self) -> int: ...


class InMemoryTTLCache:
    """Process-local cache; entries vanish on restart and are not shared between workers."""

    def __init__(self, default_ttl_seconds: float = 300.0, clock=time.monotonic):
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def clear(self, prefix: str | None = None) -> None:
        with self._lock:
            if prefix is None:
                self._entries.clear()
                return
            for key in [key for key in self._entries if key.startswith(prefix)]:
                del self._entries[key]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_cache: TTLCache = InMemoryTTLCache(default_ttl_seconds=settings.cache_ttl_seconds)


def get_cache() -> TTLCache:
    return _cache


def set_cache(cache: TTLCache) -> None:
    global _cache
    _cache = cache
