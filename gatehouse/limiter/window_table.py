"""LocalWindowTable: process-local fixed-window counters.

Fixed window, reset-on-first-hit variant. A key's window starts at its first
request and lasts ``window_s``; the boundary lives in ``WindowEntry.reset_at``
rather than in the key.

Concurrency:
    Every read-modify-write of the table (hit, prune, clear) runs under one
    ``threading.Lock``. hit() never awaits, so it is atomic per key whether
    callers share one event loop or run in worker threads: two concurrent first
    hits cannot both create an entry, and increments are never lost.

Memory:
    Entries are deleted by prune(), run on a fixed cadence by run_pruner()
    independently of traffic. hit() checks expiry itself, so correctness never
    depends on the sweep having run.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable, Optional

from gatehouse.limiter.models import RateLimitDecision, WindowEntry
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)


class LocalWindowTable:
    """Mapping of rate-limit key to WindowEntry, guarded by a single lock.

    Args:
        clock: Returns the current time in epoch seconds. Injected by tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, WindowEntry] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_s: float) -> RateLimitDecision:
        """Record one request against ``key`` and decide allow/deny.

        An absent or expired entry starts a fresh window with count=1, which
        is always allowed. Otherwise the count is incremented in place and
        the request is allowed while ``count <= limit``.
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.expired(now):
                entry = WindowEntry(count=1, reset_at=now + window_s)
                self._entries[key] = entry
                return RateLimitDecision(
                    allowed=True,
                    remaining=max(0, limit - 1),
                    reset_at=entry.reset_at,
                    limit=limit,
                    count=1,
                )

            entry.count += 1
            return RateLimitDecision(
                allowed=entry.count <= limit,
                remaining=max(0, limit - entry.count),
                reset_at=entry.reset_at,
                limit=limit,
                count=entry.count,
            )

    def prune(self) -> int:
        """Delete every entry whose window has ended. Returns the number removed."""
        with self._lock:
            now = self._clock()
            stale_keys = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale_keys:
                del self._entries[key]
        return len(stale_keys)

    def get(self, key: str) -> Optional[WindowEntry]:
        """Return a copy of the entry for ``key`` (expired entries included)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return WindowEntry(count=entry.count, reset_at=entry.reset_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    async def run_pruner(self, interval_s: float) -> None:
        """Prune every ``interval_s`` seconds until cancelled.

        Designed to run as an asyncio.Task owned by LocalRateLimiter and
        cancelled at shutdown. A failing sweep is logged and retried on the
        next tick; it never stops the loop.
        """
        logger.info("Window table pruner started", interval_s=interval_s)
        while True:
            await asyncio.sleep(interval_s)
            try:
                removed = self.prune()
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Window table prune failed (non-fatal)",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            if removed:
                logger.debug("Window table pruned", removed=removed, remaining=len(self))
