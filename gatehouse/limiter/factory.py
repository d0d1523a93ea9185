"""Rate limiter factory: strategy selection, once per process.

Selection logic:
  1. counter_store.url AND counter_store.token set  → RemoteRateLimiter
  2. otherwise, rate_limit.local_fallback enabled    → LocalRateLimiter
  3. otherwise                                       → DisabledRateLimiter (fail open)

There is no runtime switch between strategies. A remote store that goes away
mid-session makes checks unavailable; it does not divert traffic to the local
table.
"""

from __future__ import annotations

from typing import Optional

import httpx

from gatehouse.config import Config
from gatehouse.limiter.local import LocalRateLimiter
from gatehouse.limiter.protocol import DisabledRateLimiter, RateLimiter
from gatehouse.limiter.remote import RemoteRateLimiter
from gatehouse.store.client import CounterStoreClient
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)


def build_rate_limiter(
    config: Config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RateLimiter:
    """Construct (but do not start) the strategy selected by ``config``.

    Args:
        config:    Loaded application config.
        transport: Optional httpx transport for the counter store (tests only).
    """
    store = config.counter_store
    if store.enabled:
        assert store.url is not None and store.token is not None
        client = CounterStoreClient(
            url=store.url,
            token=store.token,
            timeout_s=store.timeout_s,
            transport=transport,
        )
        logger.info(
            "Rate limiter selected",
            mode=RemoteRateLimiter.mode,
            # Never log the token; host only
            store_host=store.url.split("//")[-1].split("/")[0],
            timeout_s=store.timeout_s,
        )
        return RemoteRateLimiter(client)

    if config.rate_limit.local_fallback:
        logger.info(
            "Rate limiter selected",
            mode=LocalRateLimiter.mode,
            prune_interval_s=config.rate_limit.prune_interval_s,
        )
        return LocalRateLimiter(prune_interval_s=config.rate_limit.prune_interval_s)

    logger.info(
        "Rate limiter selected",
        mode=DisabledRateLimiter.mode,
        reason="no counter store configured",
    )
    return DisabledRateLimiter()


async def create_rate_limiter(
    config: Config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RateLimiter:
    """Construct and start the configured RateLimiter.

    Called from the application lifespan. The caller owns the returned
    limiter and must ``await limiter.close()`` at shutdown.
    """
    limiter = build_rate_limiter(config, transport=transport)
    await limiter.start()
    return limiter
