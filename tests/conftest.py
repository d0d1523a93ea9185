"""Root test configuration for Gatehouse.

Isolates every test from the host environment: counter store credentials and
Gatehouse env overrides are removed, and the default config search path is
emptied so a developer's ~/.gatehouse/config.yaml never leaks into a run.

Shared fixtures:
  clock         : controllable epoch clock (seconds) for window arithmetic
  counter_store : in-memory Upstash REST fake served through httpx.MockTransport
  recording_logger : captures log calls from a monkeypatched module logger
"""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import unquote

import httpx
import pytest


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip env overrides and default config paths for every test."""
    for name in (
        "UPSTASH_REDIS_REST_URL",
        "UPSTASH_REDIS_REST_TOKEN",
        "GATEHOUSE_CONFIG",
        "GATEHOUSE_PORT",
        "GATEHOUSE_LOCAL_RATE_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("gatehouse.config.DEFAULT_CONFIG_PATHS", [])


class FakeClock:
    """Callable clock returning a settable epoch time in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeCounterStore:
    """Minimal Upstash REST server: INCR and EXPIRE over GET /{cmd}/{args...}.

    Records every request so tests can inspect URLs, auth headers and the
    exact command sequence. ``fail_with`` switches the store into a failure
    mode: an HTTP status code, "malformed" (non-JSON body) or "timeout".
    """

    def __init__(self, token: str = "test-token") -> None:
        self.token = token
        self.counters: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self.commands: list[tuple[str, ...]] = []
        self.fail_with: Optional[Any] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.fail_with == "timeout":
            raise httpx.ReadTimeout("store timed out", request=request)
        if self.fail_with == "malformed":
            return httpx.Response(200, content=b"<html>not json</html>")
        if isinstance(self.fail_with, int):
            return httpx.Response(self.fail_with, json={"error": "boom"})

        if request.headers.get("authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"error": "Unauthorized"})

        raw_path = request.url.raw_path.decode("ascii")
        segments = tuple(unquote(part) for part in raw_path.lstrip("/").split("/"))
        self.commands.append(segments)
        command, args = segments[0], segments[1:]

        if command == "incr":
            key = args[0]
            self.counters[key] = self.counters.get(key, 0) + 1
            return httpx.Response(200, content=json.dumps({"result": self.counters[key]}))
        if command == "expire":
            key, ttl = args[0], int(args[1])
            if key not in self.counters:
                return httpx.Response(200, json={"result": 0})
            self.ttls[key] = ttl
            return httpx.Response(200, json={"result": 1})
        return httpx.Response(400, json={"error": f"ERR unknown command '{command}'"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def incr_commands(self) -> list[tuple[str, ...]]:
        return [c for c in self.commands if c[0] == "incr"]

    def expire_commands(self) -> list[tuple[str, ...]]:
        return [c for c in self.commands if c[0] == "expire"]


@pytest.fixture
def counter_store() -> FakeCounterStore:
    return FakeCounterStore()


class RecordingLogger:
    """Stand-in for a module-level structlog logger; keeps (level, event, fields)."""

    def __init__(self) -> None:
        self.entries: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, level: str, event: str, **fields: Any) -> None:
        self.entries.append((level, event, fields))

    def debug(self, event: str, **fields: Any) -> None:
        self._record("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._record("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._record("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._record("error", event, **fields)

    def events(self) -> list[str]:
        return [event for _, event, _ in self.entries]


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()
