"""RateLimiter Protocol: the single contract both windowing strategies honour.

Implementations:
  RemoteRateLimiter   calendar-bucketed counters in the remote store
  LocalRateLimiter    reset-on-first-hit counters in LocalWindowTable
  DisabledRateLimiter no backend configured; every check is unavailable

Selection happens once per process in create_rate_limiter() (limiter/factory.py).
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from gatehouse.limiter.models import RateLimitDecision


@runtime_checkable
class RateLimiter(Protocol):
    """Pluggable rate-limit strategy.

    ``check()`` returns None when the backend cannot be evaluated. The
    gatekeeper interprets None as fail-open; the limiter never retries against
    another backend.
    """

    mode: str

    async def check(
        self,
        route_class: str,
        identity: str,
        limit: int,
        window_s: float,
    ) -> Optional[RateLimitDecision]:
        """Count one request for (route_class, identity) and decide allow/deny."""
        ...

    async def start(self) -> None:
        """Start background work (the local pruner). Called once from lifespan."""
        ...

    async def close(self) -> None:
        """Release resources. Called during graceful shutdown."""
        ...


class DisabledRateLimiter:
    """No-op RateLimiter used when no backend is configured.

    Every check is unavailable, so the gate fails open and no counters are
    created anywhere.
    """

    mode = "disabled"

    async def check(
        self,
        route_class: str,
        identity: str,
        limit: int,
        window_s: float,
    ) -> Optional[RateLimitDecision]:
        return None

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass
