"""CounterStoreClient: async adapter for the remote counter store.

Speaks the Upstash Redis REST dialect:

    GET {base}/{command}/{arg1}/{arg2}/...
    Authorization: Bearer <token>
    -> 200 {"result": <value>}

Every path segment is percent-encoded the same way a browser's
``encodeURIComponent`` would, so keys containing ``/`` or ``:`` survive the
round trip as single segments.

ALL failures are swallowed and surface as ``None`` ("unavailable"): transport
errors, timeouts, non-2xx statuses, non-JSON bodies, bodies without a usable
``result``. Callers treat ``None`` as "no backend", never as "deny".

The client holds no counter state. Values are owned and incremented by the
store; caching them here would reintroduce the increment race.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from urllib.parse import quote

import httpx

from gatehouse.constants import DEFAULT_COUNTER_STORE_TIMEOUT_S
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)

# Characters encodeURIComponent leaves alone (besides alphanumerics)
_UNRESERVED = "-_.!~*'()"


def encode_segment(value: object) -> str:
    """Percent-encode one command segment like ``encodeURIComponent``."""
    return quote(str(value), safe=_UNRESERVED)


class CounterStoreClient:
    """Stateless REST client for atomic counter commands.

    One shared ``httpx.AsyncClient`` is created per instance and closed by
    :meth:`aclose` at shutdown. Never instantiate per request.

    Usage:
        client = CounterStoreClient(url="https://...", token="...")
        count = await client.incr("rl:/api/auth/register:1.2.3.4:29000000")
        if count == 1:
            await client.expire("rl:/api/auth/register:1.2.3.4:29000000", 120)
        await client.aclose()
    """

    def __init__(
        self,
        url: str,
        token: str,
        timeout_s: float = DEFAULT_COUNTER_STORE_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._timeout_s = timeout_s
        self._http = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_url(self, command: str, *args: object) -> str:
        """Return the full request URL for ``command`` and its arguments."""
        segments = "/".join(encode_segment(part) for part in (command, *args))
        return f"{self._base_url}/{segments}"

    async def command(self, command: str, *args: object) -> Optional[Any]:
        """Run one store command and return its ``result``, or None if unavailable."""
        url = self.build_url(command, *args)
        try:
            response = await asyncio.wait_for(self._http.get(url), timeout=self._timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            self._unavailable(command, "timeout", exc)
            return None
        except httpx.HTTPError as exc:
            self._unavailable(command, "transport_error", exc)
            return None

        if not response.is_success:
            logger.warning(
                "Counter store unavailable",
                command=command,
                reason="bad_status",
                status_code=response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError as exc:
            self._unavailable(command, "malformed_json", exc)
            return None

        if not isinstance(payload, dict):
            logger.warning(
                "Counter store unavailable",
                command=command,
                reason="malformed_payload",
                payload_type=type(payload).__name__,
            )
            return None

        if payload.get("error") is not None:
            logger.warning(
                "Counter store unavailable",
                command=command,
                reason="store_error",
                error=str(payload["error"]),
            )
            return None

        return payload.get("result")

    async def incr(self, key: str) -> Optional[int]:
        """Atomically increment ``key``; return the new value or None."""
        result = await self.command("incr", key)
        if result is None:
            return None
        # bool is an int subclass; a boolean result is not a counter
        if isinstance(result, bool) or not isinstance(result, int):
            logger.warning(
                "Counter store unavailable",
                command="incr",
                reason="malformed_result",
                result_type=type(result).__name__,
            )
            return None
        return result

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on ``key``. Returns True if the store acknowledged the call."""
        return await self.command("expire", key, int(ttl_seconds)) is not None

    async def aclose(self) -> None:
        await self._http.aclose()
        logger.debug("Counter store client closed")

    @staticmethod
    def _unavailable(command: str, reason: str, exc: Exception) -> None:
        logger.warning(
            "Counter store unavailable",
            command=command,
            reason=reason,
            error=str(exc),
            error_type=type(exc).__name__,
        )
