"""In-memory, time-expiring storage for generated backstories.

The streaming backstory endpoint and the timeline endpoint are independent
requests.  When a client does not forward the streamed text to the timeline
step, the timeline endpoint recovers it from this store by cat name.

The store is deliberately small:

- one entry per key, last write wins
- entries older than the TTL are treated as absent
- expired entries are evicted lazily, on a read of that key or on any write
- nothing survives a process restart

:class:`TTLStore` is the generic key-value part with an injectable clock so
expiry can be tested without sleeping.  :class:`BackstoryStore` adds the
backstory-specific rules (ignore empty names and texts, return ``""`` when
nothing is stored).  The FastAPI app keeps one instance on ``app.state``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_BACKSTORY_TTL_SECONDS = 30 * 60


@dataclass
class _Entry(Generic[V]):
    value: V
    created_at: float


class TTLStore(Generic[V]):
    """A thread-safe mapping whose entries expire after ``ttl_seconds``.

    Args:
        ttl_seconds: Age after which an entry is considered absent.
        clock: Zero-argument callable returning the current time in seconds.
            Defaults to :func:`time.monotonic`.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] | None = None) -> None:
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[str, _Entry[V]] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_expired(self, entry: _Entry[V], now: float) -> bool:
        return now - entry.created_at > self._ttl

    def set(self, key: str, value: V) -> None:
        """Store *value* under *key*, sweeping expired entries first."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = _Entry(value=value, created_at=now)

    def get(self, key: str) -> V | None:
        """Return the live value for *key*, or ``None``.

        An expired entry is removed as a side effect.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                logger.info("Entry for '%s' has expired.", key)
                return None
            return entry.value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _sweep(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cleaned up %d expired entries.", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


class BackstoryStore:
    """Backstories keyed by cat name.

    Args:
        ttl_seconds: Lifetime of a stored backstory (30 minutes by default).
        clock: Optional clock override, forwarded to :class:`TTLStore`.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_BACKSTORY_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store: TTLStore[str] = TTLStore(ttl_seconds, clock=clock)

    def save(self, name: str, backstory: str) -> None:
        """Remember *backstory* for *name*.  Empty names or texts are ignored."""
        if not name or not backstory:
            return
        self._store.set(name, backstory)
        logger.info("Saved backstory for %s, length: %d", name, len(backstory))

    def get(self, name: str) -> str:
        """Return the stored backstory for *name*, or ``""`` if absent or expired."""
        if not name:
            return ""
        backstory = self._store.get(name)
        if backstory is None:
            return ""
        logger.info("Retrieved backstory for %s, length: %d", name, len(backstory))
        return backstory

    def __len__(self) -> int:
        return len(self._store)
