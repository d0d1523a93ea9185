"""Unit tests for config.py: file loading, validation, env overrides.

  Missing file             → Config.defaults(), no exception
  Missing / unknown version → SystemExit(1) with CONFIG ERROR on stderr
  Invalid YAML / values    → SystemExit(1)
  UPSTASH_REDIS_REST_*     → counter_store.url / token
  GATEHOUSE_PORT           → server.port (validated)
  GATEHOUSE_LOCAL_RATE_LIMIT → rate_limit.local_fallback
"""

from __future__ import annotations

import textwrap
from typing import Any

import pytest

from gatehouse.config import (
    SUPPORTED_VERSIONS,
    Config,
    CounterStoreConfig,
    HeadersConfig,
    load_config,
)

MISSING = "/nonexistent/path/to/config.yaml"


def _write(tmp_path: Any, body: str) -> str:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(textwrap.dedent(body))
    return str(config_file)


# ─── Defaults ─────────────────────────────────────────────────────────────────


class TestDefaults:

    def test_missing_file_returns_defaults(self) -> None:
        config = load_config(config_path=MISSING)
        assert isinstance(config, Config)
        assert config.version == 1
        assert config.path is None

    def test_default_policy(self) -> None:
        config = Config.defaults()
        assert config.rate_limit.limit == 20
        assert config.rate_limit.window_s == 60.0
        assert config.rate_limit.retry_after_s == 60
        assert config.rate_limit.local_fallback is False
        assert config.rate_limit.auth_routes == ["/api/auth/register"]
        assert config.rate_limit.auth_prefixes == ["/api/auth/"]

    def test_default_gate(self) -> None:
        gate = Config.defaults().gate
        assert gate.api_prefix == "/api/"
        assert set(gate.allowed_methods) == {"GET", "POST", "OPTIONS"}

    def test_default_server_binding(self) -> None:
        config = load_config(config_path=MISSING)
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 8080

    def test_counter_store_disabled_by_default(self) -> None:
        assert load_config(config_path=MISSING).counter_store.enabled is False

    def test_supported_versions_constant(self) -> None:
        assert SUPPORTED_VERSIONS == frozenset({1})


# ─── Version field ────────────────────────────────────────────────────────────


class TestVersionField:

    def test_missing_version(self, tmp_path: Any, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "rate_limit:\n  limit: 5\n")
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path)
        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "CONFIG ERROR" in captured.err
        assert "version" in captured.err

    def test_empty_file(self, tmp_path: Any) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=_write(tmp_path, ""))
        assert exc_info.value.code == 1

    @pytest.mark.parametrize("version", [0, 2, 99])
    def test_unsupported_version(self, tmp_path: Any, capsys: pytest.CaptureFixture, version: int) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=_write(tmp_path, f"version: {version}\n"))
        assert exc_info.value.code == 1
        assert str(version) in capsys.readouterr().err

    def test_version_only_gives_defaults(self, tmp_path: Any) -> None:
        path = _write(tmp_path, "version: 1\n")
        config = load_config(config_path=path)
        assert config.path == path
        assert config.rate_limit.limit == 20


# ─── Invalid files ────────────────────────────────────────────────────────────


class TestInvalidFiles:

    def test_invalid_yaml(self, tmp_path: Any, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "version: 1\nrate_limit: [unclosed\n")
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path)
        assert exc_info.value.code == 1
        assert "Failed to parse" in capsys.readouterr().err

    def test_top_level_list(self, tmp_path: Any) -> None:
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, "- version: 1\n"))

    @pytest.mark.parametrize(
        "section",
        [
            "rate_limit:\n  limit: 0\n",
            "rate_limit:\n  limit: -3\n",
            "rate_limit:\n  limit: 2.5\n",
            "rate_limit:\n  limit: true\n",
            "rate_limit:\n  window_s: 0\n",
            "rate_limit:\n  retry_after_s: -1\n",
            "rate_limit:\n  prune_interval_s: 0\n",
            "counter_store:\n  timeout_s: 0\n",
        ],
    )
    def test_non_positive_values(self, tmp_path: Any, section: str) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=_write(tmp_path, "version: 1\n" + section))
        assert exc_info.value.code == 1

    @pytest.mark.parametrize(
        "section",
        [
            "rate_limit:\n  auth_routes: null\n",
            "rate_limit:\n  auth_routes: /api/auth/register\n",
            "rate_limit:\n  auth_prefixes: [/api/auth/, 7]\n",
            "rate_limit:\n  local_fallback: \"false\"\n",
            "rate_limit:\n  local_fallback: 1\n",
            "rate_limit:\n  retry_after_s: 1.5\n",
            "gate:\n  api_prefix: null\n",
            "gate:\n  api_prefix: 5\n",
            "gate:\n  allowed_methods: GET\n",
            "gate:\n  allowed_methods: null\n",
            "server:\n  host: null\n",
            "server:\n  port: \"8080\"\n",
            "server:\n  port: 70000\n",
            "counter_store:\n  token: 12345\n",
            "headers:\n  content_security_policy: [default-src]\n",
            "rate_limit: 20\n",
            "gate: [GET]\n",
        ],
    )
    def test_wrong_types_refuse_to_start(
        self, tmp_path: Any, capsys: pytest.CaptureFixture, section: str
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=_write(tmp_path, "version: 1\n" + section))
        assert exc_info.value.code == 1
        assert "CONFIG ERROR" in capsys.readouterr().err

    def test_null_sections_mean_defaults(self, tmp_path: Any) -> None:
        path = _write(tmp_path, "version: 1\nrate_limit:\ngate:\nheaders:\n")
        config = load_config(config_path=path)
        assert config.rate_limit.auth_routes == ["/api/auth/register"]
        assert config.gate.api_prefix == "/api/"

    def test_unknown_http_method(self, tmp_path: Any, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "version: 1\ngate:\n  allowed_methods: [GET, FETCH]\n")
        with pytest.raises(SystemExit):
            load_config(config_path=path)
        assert "FETCH" in capsys.readouterr().err


# ─── Full file ────────────────────────────────────────────────────────────────


class TestFullFile:

    def test_all_sections(self, tmp_path: Any) -> None:
        path = _write(
            tmp_path,
            """\
            version: 1
            server:
              host: 127.0.0.1
              port: 9000
            counter_store:
              url: https://store.example.test
              token: file-token
              timeout_s: 1.5
            rate_limit:
              limit: 5
              window_s: 30
              retry_after_s: 30
              local_fallback: true
              auth_routes: [/api/auth/register, /api/auth/reset]
              auth_prefixes: []
            gate:
              allowed_methods: [get, post, options, head]
            headers:
              content_security_policy: "default-src 'self'"
              strict_transport_security: max-age=63072000
            """,
        )
        config = load_config(config_path=path)

        assert config.server.port == 9000
        assert config.counter_store.url == "https://store.example.test"
        assert config.counter_store.token == "file-token"
        assert config.counter_store.timeout_s == 1.5
        assert config.counter_store.enabled is True
        assert config.rate_limit.limit == 5
        assert config.rate_limit.window_s == 30
        assert config.rate_limit.local_fallback is True
        assert config.rate_limit.auth_routes == ["/api/auth/register", "/api/auth/reset"]
        assert config.rate_limit.auth_prefixes == []
        assert config.gate.allowed_methods == ["GET", "POST", "OPTIONS", "HEAD"]
        assert config.headers.extra() == {
            "Content-Security-Policy": "default-src 'self'",
            "Strict-Transport-Security": "max-age=63072000",
        }

    def test_config_env_var_path(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "version: 1\nrate_limit:\n  limit: 7\n")
        monkeypatch.setenv("GATEHOUSE_CONFIG", path)
        assert load_config().rate_limit.limit == 7

    def test_explicit_path_wins_over_env_var(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        env_dir = tmp_path / "env"
        env_dir.mkdir()
        monkeypatch.setenv("GATEHOUSE_CONFIG", _write(env_dir, "version: 1\nrate_limit:\n  limit: 7\n"))
        explicit = _write(tmp_path, "version: 1\nrate_limit:\n  limit: 3\n")
        assert load_config(config_path=explicit).rate_limit.limit == 3


# ─── Environment overrides ────────────────────────────────────────────────────


class TestEnvOverrides:

    def test_upstash_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://env.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "env-token")
        store = load_config(config_path=MISSING).counter_store
        assert store.url == "https://env.example.test"
        assert store.token == "env-token"
        assert store.enabled is True

    def test_env_overrides_file_credentials(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "version: 1\ncounter_store:\n  url: https://file.test\n  token: f\n")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "env-token")
        store = load_config(config_path=path).counter_store
        assert store.url == "https://file.test"
        assert store.token == "env-token"

    def test_only_url_leaves_remote_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://env.example.test")
        assert load_config(config_path=MISSING).counter_store.enabled is False

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("false", False), ("1", False)])
    def test_local_fallback_flag(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: bool) -> None:
        monkeypatch.setenv("GATEHOUSE_LOCAL_RATE_LIMIT", value)
        assert load_config(config_path=MISSING).rate_limit.local_fallback is expected

    def test_port_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GATEHOUSE_PORT", "9999")
        assert load_config(config_path=MISSING).server.port == 9999

    @pytest.mark.parametrize("value", ["abc", "0", "70000"])
    def test_invalid_port(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("GATEHOUSE_PORT", value)
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=MISSING)
        assert exc_info.value.code == 1

    def test_token_never_logged(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://env.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "do-not-print-me")
        load_config(config_path=MISSING)
        captured = capsys.readouterr()
        assert "do-not-print-me" not in captured.out
        assert "do-not-print-me" not in captured.err


# ─── Dataclasses ──────────────────────────────────────────────────────────────


class TestDataclasses:

    @pytest.mark.parametrize(
        "url,token,enabled",
        [("https://x", "t", True), ("https://x", None, False), (None, "t", False), ("", "", False)],
    )
    def test_counter_store_enabled(self, url, token, enabled: bool) -> None:
        assert CounterStoreConfig(url=url, token=token).enabled is enabled

    def test_headers_extra_empty_by_default(self) -> None:
        assert HeadersConfig().extra() == {}
