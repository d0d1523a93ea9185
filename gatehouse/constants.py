"""Shared constants for Gatehouse.

Route classes, header values and numeric defaults used across modules live
here. Config dataclasses take their defaults from this module.
"""

# ─── Method gate ──────────────────────────────────────────────────────────────

# Requests under this prefix are subject to the method allowlist.
API_PREFIX: str = "/api/"

# Methods accepted on API routes. Anything else gets HTTP 405.
API_METHODS: frozenset[str] = frozenset({"GET", "POST", "OPTIONS"})

# ─── Rate-limit gate ──────────────────────────────────────────────────────────

# Auth-sensitive routes: exact paths and path prefixes.
AUTH_ROUTES: tuple[str, ...] = ("/api/auth/register",)
AUTH_ROUTE_PREFIXES: tuple[str, ...] = ("/api/auth/",)

# Requests per window on auth-sensitive routes.
DEFAULT_RATE_LIMIT: int = 20

# Window length in seconds (calendar-bucketed in remote mode).
DEFAULT_WINDOW_S: float = 60.0

# Static Retry-After value on 429 responses. Not derived from the window.
DEFAULT_RETRY_AFTER_S: int = 60

# Remote keys live for this many windows after their first increment.
# 2 x 60s window = 120s TTL.
REMOTE_TTL_WINDOWS: int = 2

# Cadence of the local window table pruning sweep (5 minutes).
DEFAULT_PRUNE_INTERVAL_S: float = 300.0

# Upper bound on any single counter store call.
DEFAULT_COUNTER_STORE_TIMEOUT_S: float = 2.0

# Shared bucket for clients without a usable X-Forwarded-For header.
UNKNOWN_CLIENT: str = "unknown"

# Prefix of every rate-limit key, local or remote.
RATE_LIMIT_KEY_PREFIX: str = "rl"

# ─── Response headers ─────────────────────────────────────────────────────────

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Frame-Options": "DENY",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

REQUEST_ID_HEADER: str = "X-Request-ID"
RATE_LIMIT_REMAINING_HEADER: str = "X-RateLimit-Remaining"
