"""Rate-limit key construction.

Keys are ``rl:`` followed by ``:``-joined components. Each component is
percent-encoded (``/`` kept readable) so that a ``:`` inside an IPv6 address or
a path can never make two distinct (route, client, bucket) triples collide.

  remote: rl:{route}:{identity}:{bucket}   bucket = floor(now / window_s)
  local:  rl:{route}:{identity}            window carried in WindowEntry.reset_at
"""

from __future__ import annotations

import math
from urllib.parse import quote

from gatehouse.constants import RATE_LIMIT_KEY_PREFIX


def _component(value: str) -> str:
    return quote(value, safe="/")


def time_bucket(now: float, window_s: float) -> int:
    """Index of the calendar-aligned window containing ``now``."""
    return math.floor(now / window_s)


def local_key(route_class: str, identity: str) -> str:
    return ":".join((RATE_LIMIT_KEY_PREFIX, _component(route_class), _component(identity)))


def bucketed_key(route_class: str, identity: str, bucket: int) -> str:
    return f"{local_key(route_class, identity)}:{bucket}"
