"""
Short-lived response cache.

Responses are stored whole and replayed verbatim. Entries expire a fixed
time after insertion and are never refreshed in place. ``ResultCache`` is
the seam the engine depends on; ``InMemoryResultCache`` is the
process-local implementation used by default.
"""
from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from .intents import Intent, normalize_text


class ResultCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...


@dataclass
class CacheEntry:
    key: str
    inserted_at_ms: int
    expires_at: float
    payload: Any


class InMemoryResultCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry and self._clock() < entry.expires_at:
            self._hits += 1
            return entry.payload
        if entry:
            del self._entries[key]
        self._misses += 1
        return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        self._evict_expired(now)
        self._entries[key] = CacheEntry(
            key=key,
            inserted_at_ms=int(now * 1000),
            expires_at=now + ttl,
            payload=value,
        )

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for k in expired:
            del self._entries[k]

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0


def make_cache_key(
    intent: Intent,
    lat: float,
    lon: float,
    max_results: int,
    excluded_kinds: Iterable[str],
    text: str,
    decimals: int = 4,
) -> str:
    text_hash = hashlib.sha256(normalize_text(text).encode()).hexdigest()[:16]
    excluded = "|".join(sorted(excluded_kinds))
    return (
        f"rec:{intent.value}:{lat:.{decimals}f}:{lon:.{decimals}f}"
        f":{max_results}:ex={excluded}:t={text_hash}"
    )


_default_cache = InMemoryResultCache()


def get_result_cache() -> InMemoryResultCache:
    return _default_cache


def get_cache_stats() -> dict:
    return _default_cache.stats()


def clear_cache() -> None:
    _default_cache.clear()
