"""Health endpoint for Gatehouse.

GET /health returns 503 until the lifespan has built the rate limiter and set
``app.state.ready``, then 200 with the active limiter mode.

Response body (200):
    {
      "status": "ok",
      "rate_limiter": "remote" | "local" | "disabled",
      "limit": 20,
      "window_s": 60.0,
      "tracked_keys": 3          # local mode only
    }
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from gatehouse.config import Config
from gatehouse.limiter.local import LocalRateLimiter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Readiness and rate-limiter status."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "Gatehouse is starting up.",
            },
        )

    config: Config = request.app.state.config
    limiter = request.app.state.rate_limiter

    body: dict[str, Any] = {
        "status": "ok",
        "rate_limiter": limiter.mode,
        "limit": config.rate_limit.limit,
        "window_s": config.rate_limit.window_s,
    }
    if isinstance(limiter, LocalRateLimiter):
        body["tracked_keys"] = len(limiter.table)
    return body
