"""Gatehouse rate limiting package.

Public API:
  - RateLimiter         : strategy Protocol (check / start / close)
  - RateLimitDecision   : allow/deny outcome of one check
  - RemoteRateLimiter   : calendar-bucketed counters in the remote store
  - LocalRateLimiter    : reset-on-first-hit counters in process memory
  - DisabledRateLimiter : no backend; every check is unavailable
  - LocalWindowTable    : the lock-guarded table behind LocalRateLimiter
  - create_rate_limiter : select and start the strategy for this process
"""

from __future__ import annotations

from gatehouse.limiter.factory import build_rate_limiter, create_rate_limiter
from gatehouse.limiter.local import LocalRateLimiter
from gatehouse.limiter.models import RateLimitDecision, WindowEntry
from gatehouse.limiter.protocol import DisabledRateLimiter, RateLimiter
from gatehouse.limiter.remote import RemoteRateLimiter
from gatehouse.limiter.window_table import LocalWindowTable

__all__ = [
    "RateLimiter",
    "RateLimitDecision",
    "WindowEntry",
    "RemoteRateLimiter",
    "LocalRateLimiter",
    "DisabledRateLimiter",
    "LocalWindowTable",
    "build_rate_limiter",
    "create_rate_limiter",
]
