from __future__ import annotations

import threading
from datetime import datetime, timedelta


class DedupCache:
    """
    In-memory identifier -> last-seen time map with age-based eviction.

    - mark() records or refreshes an identifier
    - seen() is a pure membership test (does not refresh)
    - evict() drops every entry older than max_age; the poller runs it once
      per cycle, so an entry can outlive max_age by up to one cycle

    Nothing is persisted: each process starts with an empty cache.
    A single lock covers all three operations.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._store: dict[str, datetime] = {}  # identifier -> last seen

    def mark(self, identifier: str, now: datetime) -> None:
        with self._lock:
            self._store[identifier] = now

    def seen(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._store

    def evict(self, now: datetime, max_age: timedelta) -> int:
        """Remove entries with now - ts > max_age. Returns how many went."""
        with self._lock:
            stale = [k for k, ts in self._store.items() if now - ts > max_age]
            for k in stale:
                del self._store[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
