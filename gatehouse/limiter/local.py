"""LocalRateLimiter: reset-on-first-hit fixed windows in process memory.

Keys carry no time component; each key's window starts at its first request
(see LocalWindowTable). This is deliberately NOT the calendar-aligned scheme
of RemoteRateLimiter, and the two must stay separate: they disagree on
which requests fall in which window at the edges.

Owns the table's pruning task. start() launches it and close() cancels it, so
the sweep lives exactly as long as the application lifespan.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from gatehouse.constants import DEFAULT_PRUNE_INTERVAL_S
from gatehouse.limiter.keys import local_key
from gatehouse.limiter.models import RateLimitDecision
from gatehouse.limiter.window_table import LocalWindowTable
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)


class LocalRateLimiter:
    mode = "local"

    def __init__(
        self,
        table: Optional[LocalWindowTable] = None,
        prune_interval_s: float = DEFAULT_PRUNE_INTERVAL_S,
    ) -> None:
        self._table = table if table is not None else LocalWindowTable()
        self._prune_interval_s = prune_interval_s
        self._pruner: Optional[asyncio.Task[None]] = None

    @property
    def table(self) -> LocalWindowTable:
        return self._table

    @property
    def pruner(self) -> Optional[asyncio.Task[None]]:
        return self._pruner

    async def check(
        self,
        route_class: str,
        identity: str,
        limit: int,
        window_s: float,
    ) -> Optional[RateLimitDecision]:
        return self._table.hit(local_key(route_class, identity), limit, window_s)

    async def start(self) -> None:
        if self._pruner is not None and not self._pruner.done():
            return
        self._pruner = asyncio.create_task(
            self._table.run_pruner(self._prune_interval_s),
            name="gatehouse-window-pruner",
        )

    async def close(self) -> None:
        if self._pruner is not None and not self._pruner.done():
            self._pruner.cancel()
            try:
                await self._pruner
            except asyncio.CancelledError:
                pass
        self._pruner = None
        self._table.clear()
        logger.debug("Local rate limiter closed")
