"""RemoteRateLimiter: calendar-bucketed fixed windows in the counter store.

All clients share the same window boundaries: the key embeds
``floor(now / window_s)``, so every request in one window for one
(route, identity) lands on one remote counter and the next window starts a
fresh one.

The ``incr`` call IS the check; there is no separate read. The TTL is set only
when a counter transitions to 1, and spans two windows, so a counter outlives
its bucket and an expire racing a late increment cannot reset a live window.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Optional

from gatehouse.constants import REMOTE_TTL_WINDOWS
from gatehouse.limiter.keys import bucketed_key, time_bucket
from gatehouse.limiter.models import RateLimitDecision
from gatehouse.store.client import CounterStoreClient
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)


def remote_ttl_s(window_s: float) -> int:
    """TTL applied to a fresh remote counter (120s for a 60s window)."""
    return max(1, math.ceil(window_s * REMOTE_TTL_WINDOWS))


class RemoteRateLimiter:
    """RateLimiter backed by CounterStoreClient.

    Args:
        client: Shared counter store client, closed by :meth:`close`.
        clock:  Returns the current time in epoch seconds. Injected by tests.
    """

    mode = "remote"

    def __init__(
        self,
        client: CounterStoreClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    @property
    def client(self) -> CounterStoreClient:
        return self._client

    async def check(
        self,
        route_class: str,
        identity: str,
        limit: int,
        window_s: float,
    ) -> Optional[RateLimitDecision]:
        bucket = time_bucket(self._clock(), window_s)
        key = bucketed_key(route_class, identity, bucket)

        count = await self._client.incr(key)
        if count is None:
            return None

        if count == 1:
            ttl = remote_ttl_s(window_s)
            if not await self._client.expire(key, ttl):
                # The counter still works for this window; the store just keeps it longer
                logger.warning("Rate limit expire failed (non-fatal)", route=route_class, ttl_s=ttl)

        return RateLimitDecision(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            reset_at=(bucket + 1) * window_s,
            limit=limit,
            count=count,
        )

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        await self._client.aclose()
