"""ULID generation for request correlation.

Each admitted request without an inbound ``X-Request-ID`` gets a fresh ULID,
which is bound into the log context and echoed on the response.

Uses the ``python-ulid`` library. Do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Return a new 26-character ULID string (Crockford Base32, uppercase)."""
    return str(ULID())
