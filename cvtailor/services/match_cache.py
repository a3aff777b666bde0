"""
TTL cache with single-flight coalescing for expensive match computations.

One instance is owned by each ``MatchScoreOptimizer`` (inject a shared one to
share results across optimizers). All bookkeeping runs on the event loop
thread and never suspends between a check and the matching update, which is
what makes registration atomic relative to ``clear()``.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from cvtailor.models.models import CacheStats
from cvtailor.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheEntry(Generic[T]):
    __slots__ = ("fingerprint", "value", "created_at", "ttl_seconds")

    def __init__(self, fingerprint: str, value: T, created_at: float, ttl_seconds: float):
        self.fingerprint = fingerprint
        self.value = value
        self.created_at = created_at
        self.ttl_seconds = ttl_seconds

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MatchScoreCache(Generic[T]):
    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 100,
                 clock: Callable[[], float] = time.monotonic,
                 copier: Optional[Callable[[T], T]] = None):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # stored values are snapshots; hits get their own copy when a copier is set
        self._copy = copier or (lambda value: value)
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        # bumped by clear(); results computed under an older generation are dropped
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._bypasses = 0
        self._evictions = 0

    def get(self, fingerprint: str) -> Optional[T]:
        """Live value for ``fingerprint`` or None; expired entries are dropped."""
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[fingerprint]
            logger.debug(f"Cache entry expired: {fingerprint[:12]}")
            return None
        return self._copy(entry.value)

    def put(self, fingerprint: str, value: T) -> None:
        self._entries[fingerprint] = CacheEntry(fingerprint, value, self._clock(), self.ttl_seconds)
        self._prune()

    def _prune(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.values(), key=lambda e: e.created_at)[:overflow]
            for entry in oldest:
                del self._entries[entry.fingerprint]
            self._evictions += overflow
            logger.debug(f"Evicted {overflow} oldest cache entries")

    async def get_or_compute(self, fingerprint: str, factory: Callable[[], Awaitable[T]],
                             use_cache: bool = True) -> T:
        """Return the cached value, join an in-flight computation, or start one.

        The computation runs in its own task so an abandoned caller does not
        cancel work other callers are waiting on.
        """
        if use_cache:
            cached = self.get(fingerprint)
            if cached is not None:
                self._hits += 1
                logger.debug(f"Cache hit: {fingerprint[:12]}")
                return cached
            self._misses += 1

            pending = self._in_flight.get(fingerprint)
            if pending is not None:
                logger.debug(f"Joining in-flight computation: {fingerprint[:12]}")
                return await asyncio.shield(pending)
        else:
            self._bypasses += 1

        generation = self._generation
        task = asyncio.ensure_future(factory())
        if use_cache:
            self._in_flight[fingerprint] = task
        task.add_done_callback(lambda t: self._on_done(fingerprint, generation, t))
        return await asyncio.shield(task)

    def _on_done(self, fingerprint: str, generation: int, task: asyncio.Task) -> None:
        if self._in_flight.get(fingerprint) is task:
            del self._in_flight[fingerprint]
        if task.cancelled():
            return
        if task.exception() is not None:
            return
        if generation != self._generation:
            logger.debug(f"Discarding result computed before clear(): {fingerprint[:12]}")
            return
        self.put(fingerprint, self._copy(task.result()))

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        self._in_flight.clear()
        self._generation += 1
        logger.info(f"Match cache cleared ({size} entries)")

    def live_size(self) -> int:
        now = self._clock()
        return sum(1 for e in self._entries.values() if not e.is_expired(now))

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=self.live_size(),
            in_flight=len(self._in_flight),
            bypasses=self._bypasses,
            evictions=self._evictions,
        )

    def __len__(self) -> int:
        return self.live_size()

    def __contains__(self, fingerprint: Any) -> bool:
        entry = self._entries.get(fingerprint)
        return entry is not None and not entry.is_expired(self._clock())
