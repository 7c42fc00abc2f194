from __future__ import annotations

import time
from collections import OrderedDict
from threading import Event, RLock
from typing import Any, Callable


class QueryCache:
    """TTL + LRU cache with single-flight loading per key.

    ``None`` results are never stored, so a missing snapshot is looked up
    again on the next request instead of being pinned for the TTL.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._inflight: dict[str, Event] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> Any:
        if value is None:
            return None
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + max(ttl, 0.0)
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return value

    def invalidate(self, prefix: str = "") -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def cached(self, key: str, loader: Callable[[], Any], ttl_seconds: float | None = None) -> Any:
        existing = self.get(key)
        if existing is not None:
            return existing

        is_loader = False
        with self._lock:
            wait_event = self._inflight.get(key)
            if wait_event is None:
                wait_event = Event()
                self._inflight[key] = wait_event
                is_loader = True

        if not is_loader:
            wait_ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
            wait_event.wait(timeout=max(wait_ttl, 1.0))
            existing_after_wait = self.get(key)
            if existing_after_wait is not None:
                return existing_after_wait
            return self.set(key, loader(), ttl_seconds=ttl_seconds)

        try:
            return self.set(key, loader(), ttl_seconds=ttl_seconds)
        finally:
            with self._lock:
                event = self._inflight.pop(key, None)
                if event is not None:
                    event.set()
