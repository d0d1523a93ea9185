"""Rate-limit value types.

RateLimitDecision is returned by every RateLimiter strategy to the gatekeeper.
It is never persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check.

    allowed:   True if the request may proceed.
    remaining: Requests left in the current window (never negative).
    reset_at:  Epoch seconds at which the current window ends.
    limit:     The limit the decision was made against.
    count:     Hits observed in the current window, this one included.
    """

    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    count: int

    def retry_after_s(self, now: float) -> int:
        """Whole seconds until the window resets (0 once it has)."""
        return max(0, math.ceil(self.reset_at - now))


@dataclass
class WindowEntry:
    """Mutable per-key counter owned by LocalWindowTable."""

    count: int
    reset_at: float

    def expired(self, now: float) -> bool:
        return self.reset_at <= now
