"""Programmatic uvicorn entry point for Gatehouse.

Reads host and port from the loaded config (127.0.0.1:8080 by default) and
starts uvicorn with hardened defaults.

Usage:
    python -m gatehouse.run     # reads .gatehouse/config.yaml
    gatehouse                   # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from gatehouse.config import load_config

# Maximum number of concurrent connections accepted by uvicorn.
# New connections receive HTTP 503 when this limit is exceeded.
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds. Low value narrows the Slow Loris window.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start Gatehouse with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "gatehouse.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        # X-Forwarded-For is read by the gatekeeper itself
        proxy_headers=False,
    )


if __name__ == "__main__":
    main()
