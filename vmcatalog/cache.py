"""TTL-gated fetch-or-reuse cache for remote catalog data."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from vmcatalog.exceptions import FetchError
from vmcatalog.utils import log


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: Any
    fetched_at: float


@dataclass
class _Flight:
    lock: threading.Lock = field(default_factory=threading.Lock)
    completed: int = 0
    error: Optional[FetchError] = None


def _log_stale(key: str, exc: FetchError) -> None:
    log("WARN", f"Failed to refresh catalog '{key}': {exc}; serving cached copy")


class CatalogCache:
    """Keep one entry per key and refresh it once it is older than ``ttl`` seconds.

    ``fetch(key)`` is called synchronously on the calling thread. Concurrent
    callers of the same key share a single in-flight fetch. When a refresh
    fails with a FetchError the previous entry keeps being served and the
    failure is reported through ``on_failure``.
    """

    def __init__(
        self,
        fetch: Callable[[str], Any],
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
        on_failure: Optional[Callable[[str, FetchError], None]] = None,
    ) -> None:
        self._fetch = fetch
        self.ttl = ttl
        self._clock = clock
        self._on_failure = on_failure or _log_stale
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._flights: Dict[str, _Flight] = {}

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at >= self.ttl

    def ensure_fresh(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not self._expired(entry):
                return entry.data
            flight = self._flights.setdefault(key, _Flight())
            seen = flight.completed

        with flight.lock:
            with self._lock:
                entry = self._entries.get(key)
                if flight.completed != seen:
                    # Another caller finished a fetch while we were waiting.
                    if entry is not None:
                        return entry.data
                    if flight.error is not None:
                        raise flight.error

            try:
                data = self._fetch(key)
            except FetchError as exc:
                with self._lock:
                    flight.error = exc
                    flight.completed += 1
                if entry is None:
                    raise
                self._on_failure(key, exc)
                return entry.data

            fresh = CacheEntry(key=key, data=data, fetched_at=self._clock())
            with self._lock:
                self._entries[key] = fresh
                flight.error = None
                flight.completed += 1
            return data

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> Dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)

    def store(self, key: str, data: Any, fetched_at: Optional[float] = None) -> None:
        """Seed an entry; without ``fetched_at`` it is already due for refresh."""
        if fetched_at is None:
            fetched_at = float("-inf")
        with self._lock:
            self._entries[key] = CacheEntry(key=key, data=data, fetched_at=fetched_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
