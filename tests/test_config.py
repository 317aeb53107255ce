"""Tests for environment configuration."""

import os
from unittest.mock import patch

import pytest

from udl.config import AppConfig, _SECRET_KEYS, _redact, load_env, parse_outbound_webhooks
from udl.errors import ConfigError


# ---------------------------------------------------------------------------
# _redact helper
# ---------------------------------------------------------------------------


def test_redact_short_value():
    assert _redact("abc") == "***"
    assert _redact("") == "***"


def test_redact_long_value():
    assert _redact("Bearer abcdef123456") == "Bear***56"


# ---------------------------------------------------------------------------
# AppConfig
# ---------------------------------------------------------------------------


def test_app_config_defaults():
    config = AppConfig()
    assert config.host == "0.0.0.0"
    assert config.port == 4000
    assert config.log_level == "info"
    assert config.instance_id == "UDL"
    assert config.webhook_debounce_ms == 5000
    assert config.webhook_max_queue_size == 100
    assert config.default_webhook_path == "sync"
    assert config.outbound_webhooks == []
    assert config.validate() == []


def test_app_config_reads_env():
    env = {
        "UDL_PORT": "4100",
        "LOG_LEVEL": "DEBUG",
        "UDL_INSTANCE_ID": "edge-1",
        "UDL_WEBHOOK_DEBOUNCE_MS": "250",
        "UDL_WEBHOOK_MAX_QUEUE_SIZE": "10",
        "UDL_OUTBOUND_WEBHOOKS": '[{"url": "https://hooks.example.com/a", "retries": 1, "headers": {"Authorization": "Bearer abcdef123456"}}]',
    }
    with patch.dict(os.environ, env):
        config = AppConfig()
    assert config.port == 4100
    assert config.log_level == "debug"
    assert config.instance_id == "edge-1"
    assert config.webhook_debounce_ms == 250
    assert config.webhook_max_queue_size == 10
    assert config.outbound_webhooks[0].retries == 1


def test_non_integer_env_raises():
    with patch.dict(os.environ, {"UDL_PORT": "abc"}):
        with pytest.raises(ConfigError):
            AppConfig()


def test_to_dict_redacts_outbound_headers():
    env = {"UDL_OUTBOUND_WEBHOOKS": '[{"url": "https://x.test", "headers": {"Authorization": "Bearer abcdef123456"}}]'}
    with patch.dict(os.environ, env):
        config = AppConfig()
    redacted = config.to_dict(redact_secrets=True)
    assert redacted["outbound_webhook_headers"] == [{"Authorization": "Bear***56"}]
    assert redacted["outbound_webhooks"] == ["https://x.test"]
    plain = config.to_dict(redact_secrets=False)
    assert plain["outbound_webhook_headers"] == [{"Authorization": "Bearer abcdef123456"}]
    assert "outbound_webhook_headers" in _SECRET_KEYS


@pytest.mark.parametrize(
    "env, key",
    [
        ({"UDL_PORT": "99999"}, "UDL_PORT"),
        ({"LOG_LEVEL": "verbose"}, "LOG_LEVEL"),
        ({"UDL_WEBHOOK_DEBOUNCE_MS": "-1"}, "UDL_WEBHOOK_DEBOUNCE_MS"),
        ({"UDL_WEBHOOK_MAX_QUEUE_SIZE": "0"}, "UDL_WEBHOOK_MAX_QUEUE_SIZE"),
        ({"UDL_DEFAULT_WEBHOOK_PATH": "/sync"}, "UDL_DEFAULT_WEBHOOK_PATH"),
        ({"UDL_OUTBOUND_WEBHOOKS": '[{"url": "ftp://x.test"}]'}, "Outbound webhook URL"),
    ],
)
def test_validate_reports_problems(env, key):
    with patch.dict(os.environ, env):
        config = AppConfig()
    assert any(key in e for e in config.validate())


# ---------------------------------------------------------------------------
# UDL_OUTBOUND_WEBHOOKS parsing
# ---------------------------------------------------------------------------


def test_parse_outbound_webhooks_empty():
    assert parse_outbound_webhooks(None) == []
    assert parse_outbound_webhooks("  ") == []


@pytest.mark.parametrize("raw", ["{not json", '{"url": "https://x.test"}', '[{"url": "https://x.test", "method": "PUT"}]'])
def test_parse_outbound_webhooks_invalid(raw):
    with pytest.raises(ConfigError):
        parse_outbound_webhooks(raw)


# ---------------------------------------------------------------------------
# .env loading
# ---------------------------------------------------------------------------


def test_load_env_precedence(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("UDL_INSTANCE_ID=from-env\nUDL_PORT=4001\nUDL_HOST=127.0.0.1\n")
    (tmp_path / ".env.local").write_text("UDL_INSTANCE_ID=from-local\nUDL_PORT=4002\n")
    monkeypatch.setenv("UDL_PORT", "4003")
    # Registered with monkeypatch so values loaded from the files are undone
    for name in ("UDL_INSTANCE_ID", "UDL_HOST"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)

    loaded = load_env(tmp_path)

    assert [p.name for p in loaded] == [".env.local", ".env"]
    assert os.environ["UDL_PORT"] == "4003"
    assert os.environ["UDL_INSTANCE_ID"] == "from-local"
    assert os.environ["UDL_HOST"] == "127.0.0.1"


def test_load_env_missing_files(tmp_path):
    assert load_env(tmp_path) == []
