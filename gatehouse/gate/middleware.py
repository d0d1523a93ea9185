"""AdmissionGatekeeper: request admission middleware for Gatehouse.

Runs in front of every route. Per request, terminal at the first reject:

  1. Method gate     /api/* with a method outside GET/POST/OPTIONS → HTTP 405
  2. Rate-limit gate auth-sensitive paths (/api/auth/register, /api/auth/*)
                     checked against the process RateLimiter          → HTTP 429
  3. Pass-through    downstream app handles the request
  4. Decoration      security headers + X-Request-ID on EVERY response that
                     leaves this middleware, whichever branch produced it

Fail-open policy: if the limiter is missing, unavailable (returns None) or
raises, the request proceeds unthrottled. A broken or absent counter store
must never take the product down. The only rejections produced here are 405
and 429. A downstream exception is rendered here as a generic 500 so it is
decorated like any other response.

Registration (in create_app() in gatehouse/main.py):
    application.add_middleware(AdmissionGatekeeper)

Config and limiter are read from ``app.state`` at request time (set by the
lifespan), unless passed explicitly to the constructor.
"""

from __future__ import annotations

from typing import Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from gatehouse.config import Config
from gatehouse.constants import RATE_LIMIT_REMAINING_HEADER, REQUEST_ID_HEADER
from gatehouse.gate.headers import apply_security_headers, build_security_headers
from gatehouse.gate.identity import client_identity, is_api_path, is_rate_limited_path
from gatehouse.limiter.models import RateLimitDecision
from gatehouse.limiter.protocol import RateLimiter
from gatehouse.utils.logger import clear_request_id, get_logger, set_request_id
from gatehouse.utils.ulid import generate_ulid

logger = get_logger(__name__)

_DEFAULT_CONFIG = Config.defaults()

_TOO_MANY_REQUESTS_ERROR = "Too many requests"

_INTERNAL_ERROR = "Internal server error"

_METHOD_NOT_ALLOWED_BODY = "Method Not Allowed"

# Longest inbound X-Request-ID echoed back; longer values are replaced
_MAX_REQUEST_ID_LENGTH = 128


class AdmissionGatekeeper(BaseHTTPMiddleware):
    """Method allowlist, auth-route rate limiting and security headers.

    Args:
        app:          Downstream ASGI app.
        config:       Explicit config. Defaults to ``app.state.config``, then
                      to ``Config.defaults()``.
        rate_limiter: Explicit limiter. Defaults to ``app.state.rate_limiter``;
                      with neither, the rate-limit gate fails open.
    """

    def __init__(
        self,
        app: Any,
        config: Optional[Config] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        super().__init__(app)
        self._config = config
        self._rate_limiter = rate_limiter

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        config = self._resolve_config(request)
        request_id = _request_id(request)
        set_request_id(request_id)
        try:
            try:
                response = await self._admit(request, call_next, config)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Unhandled exception",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    path=str(request.url.path),
                )
                response = _internal_server_error()
            apply_security_headers(response.headers, build_security_headers(config.headers.extra()))
            apply_security_headers(response.headers, {REQUEST_ID_HEADER: request_id})
            return response
        finally:
            clear_request_id()

    # ── Gates ─────────────────────────────────────────────────────────────────

    async def _admit(self, request: Request, call_next, config: Config) -> Response:
        path = request.url.path
        method = request.method.upper()

        # ── 1. Method gate ────────────────────────────────────────────────────
        gate = config.gate
        if is_api_path(path, gate.api_prefix) and method not in gate.allowed_methods:
            logger.warning("Method not allowed", method=method, path=path)
            return PlainTextResponse(
                _METHOD_NOT_ALLOWED_BODY,
                status_code=405,
                headers={"Allow": ", ".join(gate.allowed_methods)},
            )

        # ── 2. Rate-limit gate ────────────────────────────────────────────────
        policy = config.rate_limit
        if is_rate_limited_path(path, policy.auth_routes, policy.auth_prefixes):
            identity = client_identity(request.headers)
            decision = await self._check(request, path, identity, config)
            if decision is not None and not decision.allowed:
                logger.warning(
                    "Rate limit exceeded",
                    path=path,
                    client=identity,
                    count=decision.count,
                    limit=decision.limit,
                )
                return _too_many_requests(decision, policy.retry_after_s)

        # ── 3. Pass-through ───────────────────────────────────────────────────
        return await call_next(request)

    async def _check(
        self,
        request: Request,
        path: str,
        identity: str,
        config: Config,
    ) -> Optional[RateLimitDecision]:
        """Ask the limiter for a decision. None means fail open."""
        limiter = self._resolve_limiter(request)
        if limiter is None:
            return None

        policy = config.rate_limit
        try:
            decision = await limiter.check(path, identity, policy.limit, policy.window_s)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Rate limiter failed, admitting request",
                mode=getattr(limiter, "mode", None),
                error=str(exc),
                error_type=type(exc).__name__,
                path=path,
            )
            return None

        if decision is None:
            logger.debug("Rate limiter unavailable, admitting request", mode=limiter.mode, path=path)
        return decision

    # ── app.state lookups ─────────────────────────────────────────────────────

    def _resolve_config(self, request: Request) -> Config:
        if self._config is not None:
            return self._config
        config = getattr(_app_state(request), "config", None)
        return config if isinstance(config, Config) else _DEFAULT_CONFIG

    def _resolve_limiter(self, request: Request) -> Optional[RateLimiter]:
        if self._rate_limiter is not None:
            return self._rate_limiter
        return getattr(_app_state(request), "rate_limiter", None)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _app_state(request: Request) -> Any:
    app = request.scope.get("app")
    return getattr(app, "state", None)


def _request_id(request: Request) -> str:
    """Echo a sane inbound X-Request-ID, otherwise mint a ULID."""
    inbound = request.headers.get(REQUEST_ID_HEADER)
    if inbound and len(inbound) <= _MAX_REQUEST_ID_LENGTH and inbound.isprintable():
        return inbound
    return generate_ulid()


def _too_many_requests(decision: RateLimitDecision, retry_after_s: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": _TOO_MANY_REQUESTS_ERROR},
        headers={
            "Retry-After": str(retry_after_s),
            RATE_LIMIT_REMAINING_HEADER: str(decision.remaining),
        },
    )


def _internal_server_error() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": _INTERNAL_ERROR})
