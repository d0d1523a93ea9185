"""Client identity and route classification for the admission gate.

client_identity() is best effort: the first X-Forwarded-For entry, trimmed.
Anything missing, empty or unreadable collapses to the shared ``"unknown"``
bucket. That coarsening is intentional: non-production setups often lack the
proxy header, and a shared bucket is preferable to rejecting them.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from gatehouse.constants import UNKNOWN_CLIENT
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)

FORWARDED_FOR_HEADER = "x-forwarded-for"


def client_identity(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit identity from request headers. Never raises."""
    try:
        forwarded = headers.get(FORWARDED_FOR_HEADER)
        if not forwarded:
            return UNKNOWN_CLIENT
        first = forwarded.split(",")[0].strip()
        return first or UNKNOWN_CLIENT
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Client identity extraction failed, using shared bucket",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return UNKNOWN_CLIENT


def is_api_path(path: str, api_prefix: str) -> bool:
    return path.startswith(api_prefix)


def is_rate_limited_path(
    path: str,
    exact_routes: Iterable[str],
    prefixes: Iterable[str],
) -> bool:
    """True for auth-sensitive paths: an exact route or under a listed prefix."""
    if path in exact_routes:
        return True
    return any(path.startswith(prefix) for prefix in prefixes)
