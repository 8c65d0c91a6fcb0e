"""Bundle Cache: LRU memo of resolved bundles with single-flight compute.

Keys are ``(request signature, snapshot hash)``. Concurrent callers with
the same key share one computation through a
:class:`concurrent.futures.Future`; callers with different keys never wait
on each other because computation happens outside the index lock.

Entries are invalidated wholesale when the engine publishes a new snapshot
hash (:meth:`BundleCache.invalidate`), never by wall-clock expiry. Results
computed against an older snapshot are returned to their callers but not
stored.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass

from ctxctl.domain.models import ResolvedBundle

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache counters."""

    size: int
    max_entries: int
    hits: int
    misses: int
    joins: int
    evictions: int
    generation: str | None


class BundleCache:
    """Thread-safe LRU cache of :class:`ResolvedBundle` objects.

    Parameters:
        max_entries: LRU capacity. ``0`` disables storage but keeps
            single-flight deduplication.
    """

    def __init__(self, max_entries: int = 256) -> None:
        if max_entries < 0:
            msg = f"max_entries must be >= 0, got {max_entries}"
            raise ValueError(msg)
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, ResolvedBundle] = OrderedDict()
        self._inflight: dict[CacheKey, Future[ResolvedBundle]] = {}
        self._generation: str | None = None
        self._hits = 0
        self._misses = 0
        self._joins = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], ResolvedBundle],
    ) -> ResolvedBundle:
        """Return the cached bundle for *key*, computing it at most once.

        Exceptions from *compute* propagate to every caller waiting on the
        same flight and are never cached.
        """
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self._hits += 1
                return cached

            future = self._inflight.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._inflight[key] = future
                self._misses += 1
            else:
                self._joins += 1

        if not owner:
            return future.result()

        try:
            bundle = compute()
        except Exception as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise
        except BaseException:
            # KeyboardInterrupt and friends: release waiters with CancelledError.
            with self._lock:
                self._inflight.pop(key, None)
            future.cancel()
            raise

        with self._lock:
            self._inflight.pop(key, None)
            if key[1] == self._generation and self.max_entries > 0:
                self._entries[key] = bundle
                self._evict_locked()
        future.set_result(bundle)
        return bundle

    def invalidate(self, generation: str | None = None) -> int:
        """Drop every entry and adopt *generation* as the current snapshot hash.

        Returns the number of entries dropped. Invalidating with the
        current generation is a no-op.
        """
        with self._lock:
            if generation is not None and generation == self._generation:
                return 0
            dropped = len(self._entries)
            self._entries = OrderedDict()
            self._generation = generation
        if dropped:
            logger.debug("Bundle cache invalidated: %d entries dropped", dropped)
        return dropped

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_entries=self.max_entries,
                hits=self._hits,
                misses=self._misses,
                joins=self._joins,
                evictions=self._evictions,
                generation=self._generation,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_locked(self) -> None:
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Bundle cache evicted %s", evicted[0][:12])
