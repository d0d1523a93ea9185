"""Config loading for Gatehouse.

Reads `.gatehouse/config.yaml` (or `~/.gatehouse/config.yaml`).
Raises SystemExit on parse errors, missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided, for testing or explicit override)
  2. GATEHOUSE_CONFIG environment variable (if set)
  3. `.gatehouse/config.yaml` (working directory, for development)
  4. `~/.gatehouse/config.yaml` (home directory, for production deployments)

Environment variable overrides (read once, at load time):
  UPSTASH_REDIS_REST_URL     counter_store.url
  UPSTASH_REDIS_REST_TOKEN   counter_store.token
  GATEHOUSE_PORT             server.port
  GATEHOUSE_LOCAL_RATE_LIMIT rate_limit.local_fallback ("true" / "false")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from gatehouse.constants import (
    API_METHODS,
    API_PREFIX,
    AUTH_ROUTE_PREFIXES,
    AUTH_ROUTES,
    DEFAULT_COUNTER_STORE_TIMEOUT_S,
    DEFAULT_PRUNE_INTERVAL_S,
    DEFAULT_RATE_LIMIT,
    DEFAULT_RETRY_AFTER_S,
    DEFAULT_WINDOW_S,
)
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Environment variable names ───────────────────────────────────────────────

ENV_COUNTER_STORE_URL = "UPSTASH_REDIS_REST_URL"
ENV_COUNTER_STORE_TOKEN = "UPSTASH_REDIS_REST_TOKEN"
ENV_CONFIG_PATH = "GATEHOUSE_CONFIG"
ENV_PORT = "GATEHOUSE_PORT"
ENV_LOCAL_RATE_LIMIT = "GATEHOUSE_LOCAL_RATE_LIMIT"

# Methods a deployment may put on the API allowlist
KNOWN_HTTP_METHODS: frozenset[str] = frozenset(
    {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"}
)

DEFAULT_CONFIG_PATHS = [
    ".gatehouse/config.yaml",
    os.path.expanduser("~/.gatehouse/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """Uvicorn binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class CounterStoreConfig:
    """Remote counter store (Upstash Redis REST) connection settings.

    url:   REST endpoint, e.g. "https://eu1-example.upstash.io"
    token: bearer credential
    Remote mode needs both. One without the other leaves remote mode off.
    """

    url: Optional[str] = None
    token: Optional[str] = None
    timeout_s: float = DEFAULT_COUNTER_STORE_TIMEOUT_S

    @property
    def enabled(self) -> bool:
        return bool(self.url) and bool(self.token)


@dataclass
class RateLimitConfig:
    """Rate-limit policy for auth-sensitive routes."""

    limit: int = DEFAULT_RATE_LIMIT
    window_s: float = DEFAULT_WINDOW_S
    retry_after_s: int = DEFAULT_RETRY_AFTER_S
    prune_interval_s: float = DEFAULT_PRUNE_INTERVAL_S
    local_fallback: bool = False  # use the in-process table when no counter store
    auth_routes: list[str] = field(default_factory=lambda: list(AUTH_ROUTES))
    auth_prefixes: list[str] = field(default_factory=lambda: list(AUTH_ROUTE_PREFIXES))


@dataclass
class GateConfig:
    """Method allowlist for API routes."""

    api_prefix: str = API_PREFIX
    allowed_methods: list[str] = field(default_factory=lambda: sorted(API_METHODS))


@dataclass
class HeadersConfig:
    """Optional site-wide headers added on top of the fixed security set."""

    content_security_policy: Optional[str] = None
    strict_transport_security: Optional[str] = None

    def extra(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.content_security_policy:
            headers["Content-Security-Policy"] = self.content_security_policy
        if self.strict_transport_security:
            headers["Strict-Transport-Security"] = self.strict_transport_security
        return headers


@dataclass
class Config:
    """Root configuration object populated from .gatehouse/config.yaml.

    All fields have safe defaults. Gatehouse can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    counter_store: CounterStoreConfig = field(default_factory=CounterStoreConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    headers: HeadersConfig = field(default_factory=HeadersConfig)
    path: Optional[str] = None  # path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On values of the wrong type, out-of-range rate-limit
                           values or unknown HTTP methods.
        """
        # ── Server ────────────────────────────────────────────────────────────
        server_raw = _section(raw, "server", path)
        server = ServerConfig(
            host=_require_str("server.host", server_raw.get("host", "127.0.0.1"), path),
            port=_require_port("server.port", server_raw.get("port", 8080), path),
        )

        # ── Counter store ─────────────────────────────────────────────────────
        store_raw = _section(raw, "counter_store", path)
        counter_store = CounterStoreConfig(
            url=_optional_str("counter_store.url", store_raw.get("url"), path),
            token=_optional_str("counter_store.token", store_raw.get("token"), path),
            timeout_s=store_raw.get("timeout_s", DEFAULT_COUNTER_STORE_TIMEOUT_S),
        )

        # ── Rate limit ────────────────────────────────────────────────────────
        rl_raw = _section(raw, "rate_limit", path)
        rate_limit = RateLimitConfig(
            limit=rl_raw.get("limit", DEFAULT_RATE_LIMIT),
            window_s=rl_raw.get("window_s", DEFAULT_WINDOW_S),
            retry_after_s=rl_raw.get("retry_after_s", DEFAULT_RETRY_AFTER_S),
            prune_interval_s=rl_raw.get("prune_interval_s", DEFAULT_PRUNE_INTERVAL_S),
            local_fallback=_require_bool(
                "rate_limit.local_fallback", rl_raw.get("local_fallback", False), path
            ),
            auth_routes=_require_str_list(
                "rate_limit.auth_routes", rl_raw.get("auth_routes", list(AUTH_ROUTES)), path
            ),
            auth_prefixes=_require_str_list(
                "rate_limit.auth_prefixes", rl_raw.get("auth_prefixes", list(AUTH_ROUTE_PREFIXES)), path
            ),
        )
        _validate_rate_limit(rate_limit, path)
        _validate_positive("counter_store.timeout_s", counter_store.timeout_s, path)

        # ── Gate ──────────────────────────────────────────────────────────────
        gate_raw = _section(raw, "gate", path)
        methods = [
            m.upper()
            for m in _require_str_list(
                "gate.allowed_methods", gate_raw.get("allowed_methods", sorted(API_METHODS)), path
            )
        ]
        unknown = sorted(set(methods) - KNOWN_HTTP_METHODS)
        if unknown:
            _config_error(
                f"CONFIG ERROR: Unknown HTTP method(s) in gate.allowed_methods: {unknown}. "
                f"Supported values: {sorted(KNOWN_HTTP_METHODS)}."
            )
        gate = GateConfig(
            api_prefix=_require_str("gate.api_prefix", gate_raw.get("api_prefix", API_PREFIX), path),
            allowed_methods=methods,
        )

        # ── Headers ───────────────────────────────────────────────────────────
        headers_raw = _section(raw, "headers", path)
        headers = HeadersConfig(
            content_security_policy=_optional_str(
                "headers.content_security_policy", headers_raw.get("content_security_policy"), path
            ),
            strict_transport_security=_optional_str(
                "headers.strict_transport_security", headers_raw.get("strict_transport_security"), path
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            counter_store=counter_store,
            rate_limit=rate_limit,
            gate=gate,
            headers=headers,
            path=path,
        )


# ─── Validation helpers ───────────────────────────────────────────────────────


def _config_error(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _where(path: Optional[str]) -> str:
    return f" in {path}" if path else ""


def _section(raw: dict, name: str, path: Optional[str]) -> dict:
    """Return a top-level section; an absent or empty section means defaults."""
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        _config_error(f"CONFIG ERROR: '{name}' must be a mapping, got {section!r}{_where(path)}")
    return section


def _require_str(name: str, value: object, path: Optional[str]) -> str:
    if not isinstance(value, str) or not value:
        _config_error(f"CONFIG ERROR: {name} must be a non-empty string, got {value!r}{_where(path)}")
    return value


def _optional_str(name: str, value: object, path: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        _config_error(f"CONFIG ERROR: {name} must be a string, got {value!r}{_where(path)}")
    return value


def _require_bool(name: str, value: object, path: Optional[str]) -> bool:
    # YAML true/false only; the string "false" must not silently read as True
    if not isinstance(value, bool):
        _config_error(f"CONFIG ERROR: {name} must be true or false, got {value!r}{_where(path)}")
    return value


def _require_str_list(name: str, value: object, path: Optional[str]) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        _config_error(f"CONFIG ERROR: {name} must be a list of strings, got {value!r}{_where(path)}")
    return list(value)


def _require_port(name: str, value: object, path: Optional[str]) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        _config_error(
            f"CONFIG ERROR: {name} must be an integer between 1 and 65535, got {value!r}{_where(path)}"
        )
    return value


def _validate_positive(name: str, value: object, path: Optional[str]) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        _config_error(f"CONFIG ERROR: {name} must be a positive number, got {value!r}{_where(path)}")


def _validate_positive_int(name: str, value: object, path: Optional[str]) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        _config_error(f"CONFIG ERROR: {name} must be an integer, got {value!r}{_where(path)}")
    _validate_positive(name, value, path)


def _validate_rate_limit(rate_limit: RateLimitConfig, path: Optional[str]) -> None:
    """Reject limits and intervals that would make the gate meaningless."""
    _validate_positive_int("rate_limit.limit", rate_limit.limit, path)
    _validate_positive("rate_limit.window_s", rate_limit.window_s, path)
    # Retry-After is delta-seconds: a whole number
    _validate_positive_int("rate_limit.retry_after_s", rate_limit.retry_after_s, path)
    _validate_positive("rate_limit.prune_interval_s", rate_limit.prune_interval_s, path)


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides onto a loaded Config.

    Raises:
        SystemExit(1): If GATEHOUSE_PORT is not a valid port number.
    """
    env_url = os.environ.get(ENV_COUNTER_STORE_URL)
    env_token = os.environ.get(ENV_COUNTER_STORE_TOKEN)
    if env_url:
        config.counter_store.url = env_url
    if env_token:
        config.counter_store.token = env_token

    env_local = os.environ.get(ENV_LOCAL_RATE_LIMIT)
    if env_local is not None:
        config.rate_limit.local_fallback = env_local.lower() == "true"

    env_port = os.environ.get(ENV_PORT)
    if env_port:
        try:
            port = int(env_port)
        except ValueError:
            _config_error(f"CONFIG ERROR: {ENV_PORT} must be an integer, got {env_port!r}")
        if not 1 <= port <= 65535:
            _config_error(f"CONFIG ERROR: {ENV_PORT} out of range: {port}")
        config.server.port = port


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Gatehouse configuration.

    If no file is found on the search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Environment overrides are applied afterwards in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid values, or invalid ``GATEHOUSE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get(ENV_CONFIG_PATH)
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        _log_loaded(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Gatehouse refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _config_error(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "Gatehouse is configured to bind on 0.0.0.0 (all interfaces). "
            "Make sure a trusted proxy sets X-Forwarded-For, or every client "
            "shares one rate-limit bucket."
        )

    _log_loaded(config)
    return config


def _log_loaded(config: Config) -> None:
    store = config.counter_store
    if bool(store.url) != bool(store.token):
        logger.warning(
            "Counter store partially configured, remote rate limiting disabled",
            url_set=bool(store.url),
            token_set=bool(store.token),
        )
    # Never log the token
    logger.info(
        "Config loaded",
        path=config.path,
        version=config.version,
        counter_store=store.enabled,
        local_fallback=config.rate_limit.local_fallback,
        limit=config.rate_limit.limit,
        window_s=config.rate_limit.window_s,
    )
