from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from mangamachine.core.metrics import record_cache_lookup
from mangamachine.orchestration.fingerprint import fingerprint_namespace

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
DEFAULT_TTL_SECONDS = 4 * 60 * 60


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float
    size: int


@dataclass(frozen=True)
class CacheStats:
    total_items: int
    total_size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.hits + self.misses
        return self.misses / total if total else 0.0


def _entry_size(value: Any) -> int:
    return int(getattr(value, "size_bytes", 0) or 0)


class CacheStore:
    """In-process artifact cache keyed by fingerprint.

    Advisory only: a miss forces regeneration and nothing else. Entries expire
    after their TTL, and the oldest entries are evicted once the byte budget is
    exceeded until usage drops to 80% of it.
    """

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: dict[str, CacheEntry] = {}
        self._max_bytes = max_bytes
        self._default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, fingerprint: str) -> Any | None:
        namespace = fingerprint_namespace(fingerprint)
        entry = self._entries.get(fingerprint)
        if entry is not None and self._clock() > entry.expires_at:
            del self._entries[fingerprint]
            entry = None

        if entry is None:
            self._misses += 1
            record_cache_lookup(namespace, hit=False)
            return None

        self._hits += 1
        record_cache_lookup(namespace, hit=True)
        return entry.value

    def put(self, fingerprint: str, value: Any, ttl_seconds: float | None = None) -> None:
        now = self._clock()
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds
        # Re-inserting moves the key to the end so eviction order follows age.
        self._entries.pop(fingerprint, None)
        self._entries[fingerprint] = CacheEntry(
            key=fingerprint,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            size=_entry_size(value),
        )
        self._ensure_size()

    def has(self, fingerprint: str) -> bool:
        entry = self._entries.get(fingerprint)
        return entry is not None and self._clock() <= entry.expires_at

    def delete(self, fingerprint: str) -> bool:
        return self._entries.pop(fingerprint, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("cache purge removed=%d", len(expired))
        return len(expired)

    def current_size(self) -> int:
        return sum(entry.size for entry in self._entries.values())

    def stats(self) -> CacheStats:
        return CacheStats(
            total_items=len(self._entries),
            total_size=self.current_size(),
            hits=self._hits,
            misses=self._misses,
        )

    def _ensure_size(self) -> None:
        current = self.current_size()
        if current <= self._max_bytes:
            return

        target = self._max_bytes * 0.8
        removed = 0
        for key in list(self._entries):
            current -= self._entries.pop(key).size
            removed += 1
            if current <= target:
                break
        logger.info("cache size limit reached removed=%d size=%d", removed, current)
