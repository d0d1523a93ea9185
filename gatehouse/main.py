"""Gatehouse FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app(): testable application factory
  - lifespan    : @asynccontextmanager startup/shutdown sequence
  - app = create_app(): module-level instance for uvicorn

Startup sequence:
  1. load_config()          → app.state.config
  2. create_rate_limiter()  → app.state.rate_limiter
                              (remote / local / disabled, chosen once;
                               local mode starts its pruning task here)
  3. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → rate_limiter.close()
  (cancels the pruning task or closes the counter store HTTP client)

Downstream site routes are mounted by the host application; Gatehouse owns
only admission. ``create_app()`` accepts extra routers for that purpose.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from gatehouse.config import Config, load_config
from gatehouse.gate.middleware import AdmissionGatekeeper
from gatehouse.health import router as health_router
from gatehouse.limiter.factory import create_rate_limiter
from gatehouse.limiter.protocol import RateLimiter
from gatehouse.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the rate limiter, tear it down on exit.

    The limiter (and, in local mode, its window table and pruning task) is
    owned by this scope. Nothing outlives it.
    """
    logger.info("Gatehouse starting up...")

    # load_config() raises SystemExit on invalid config, before ready=True.
    config: Config = load_config()
    app.state.config = config

    rate_limiter: RateLimiter = await create_rate_limiter(config)
    app.state.rate_limiter = rate_limiter

    app.state.ready = True
    logger.info("Gatehouse ready", rate_limiter=rate_limiter.mode)

    yield

    logger.info("Gatehouse shutting down...")
    app.state.ready = False

    try:
        await rate_limiter.close()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Rate limiter close error (non-fatal)", error=str(exc))

    logger.info("Gatehouse shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(routers: Optional[Iterable[APIRouter]] = None) -> FastAPI:
    """Create and configure the Gatehouse FastAPI application.

    Call this function directly in tests to get an isolated app instance.

    Args:
        routers: Downstream routers to mount behind the gatekeeper.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Gatehouse",
        description="Request admission layer: method allowlist, auth-route rate limiting, security headers",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 for any request that arrives before startup completes.
    application.state.ready = False

    # Every routed response, HTTPException bodies included, passes through the
    # gatekeeper on the way out. It renders downstream crashes as decorated 500s;
    # the Exception handler below only sees failures inside the middleware itself.
    application.add_middleware(AdmissionGatekeeper)

    application.include_router(health_router)
    for router in routers or ():
        application.include_router(router)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


app = create_app()
