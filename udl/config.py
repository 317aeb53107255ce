"""Environment configuration for the webhook server.

Values come from the process environment, optionally seeded from ``.env``
files by :func:`load_env`. ``AppConfig`` reads the environment when it is
constructed, so tests can patch ``os.environ`` and build a fresh one.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from udl.errors import ConfigError
from udl.webhooks.default_handler import DEFAULT_WEBHOOK_PATH
from udl.webhooks.outbound import DEFAULT_SOURCE, OutboundWebhookConfig
from udl.webhooks.queue import DEFAULT_DEBOUNCE_MS, DEFAULT_MAX_QUEUE_SIZE

logger = logging.getLogger(__name__)

ENV_FILES = (".env.local", ".env")
VALID_LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

# Config keys whose values must never be exposed verbatim
_SECRET_KEYS = frozenset({"outbound_webhook_headers"})


def load_env(directory: Union[str, Path, None] = None) -> List[Path]:
    """Load ``.env.local`` and ``.env`` from *directory* (default: cwd).

    Real environment variables always win, and ``.env.local`` wins over
    ``.env``. Returns the files that were found.
    """
    base = Path(directory) if directory is not None else Path.cwd()
    loaded: List[Path] = []
    for name in ENV_FILES:
        path = base / name
        if path.is_file():
            load_dotenv(dotenv_path=path, override=False)
            loaded.append(path)
    if loaded:
        logger.info("Loaded environment from %s", ", ".join(str(p) for p in loaded))
    return loaded


def _redact(value: str) -> str:
    """Hide a secret, keeping a short prefix and suffix when it is long enough."""
    if len(value) < 8:
        return "***"
    return f"{value[:4]}***{value[-2:]}"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def parse_outbound_webhooks(raw: Optional[str]) -> List[OutboundWebhookConfig]:
    """Parse ``UDL_OUTBOUND_WEBHOOKS``: a JSON list of destination objects."""
    if raw is None or raw.strip() == "":
        return []
    try:
        entries = json.loads(raw)
    except ValueError as exc:
        raise ConfigError(f"UDL_OUTBOUND_WEBHOOKS is not valid JSON: {exc}") from exc
    if not isinstance(entries, list):
        raise ConfigError("UDL_OUTBOUND_WEBHOOKS must be a JSON list")
    configs = []
    for index, entry in enumerate(entries):
        try:
            configs.append(OutboundWebhookConfig.model_validate(entry))
        except ValidationError as exc:
            raise ConfigError(f"UDL_OUTBOUND_WEBHOOKS[{index}] is invalid: {exc}") from exc
    return configs


class AppConfig:
    """Server settings read from the environment."""

    def __init__(self) -> None:
        self.host = os.environ.get("UDL_HOST", "0.0.0.0")
        self.port = _env_int("UDL_PORT", 4000)
        self.log_level = os.environ.get("LOG_LEVEL", "info").lower()
        self.instance_id = os.environ.get("UDL_INSTANCE_ID") or DEFAULT_SOURCE
        self.webhook_debounce_ms = _env_int("UDL_WEBHOOK_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS)
        self.webhook_max_queue_size = _env_int("UDL_WEBHOOK_MAX_QUEUE_SIZE", DEFAULT_MAX_QUEUE_SIZE)
        self.default_webhook_path = os.environ.get("UDL_DEFAULT_WEBHOOK_PATH") or DEFAULT_WEBHOOK_PATH
        self.outbound_webhooks = parse_outbound_webhooks(os.environ.get("UDL_OUTBOUND_WEBHOOKS"))

    def to_dict(self, redact_secrets: bool = True) -> Dict[str, Any]:
        headers = [dict(c.headers) for c in self.outbound_webhooks]
        if redact_secrets:
            headers = [{k: _redact(v) for k, v in h.items()} for h in headers]
        return {
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "instance_id": self.instance_id,
            "webhook_debounce_ms": self.webhook_debounce_ms,
            "webhook_max_queue_size": self.webhook_max_queue_size,
            "default_webhook_path": self.default_webhook_path,
            "outbound_webhooks": [c.url for c in self.outbound_webhooks],
            "outbound_webhook_headers": headers,
        }

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors: List[str] = []
        if not 1 <= self.port <= 65535:
            errors.append(f"UDL_PORT must be between 1 and 65535, got {self.port}")
        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}, got {self.log_level!r}")
        if self.webhook_debounce_ms < 0:
            errors.append("UDL_WEBHOOK_DEBOUNCE_MS must be >= 0")
        if self.webhook_max_queue_size < 1:
            errors.append("UDL_WEBHOOK_MAX_QUEUE_SIZE must be >= 1")
        path = self.default_webhook_path
        if path.startswith("/") or path.endswith("/") or "//" in path:
            errors.append("UDL_DEFAULT_WEBHOOK_PATH must not have leading, trailing or empty segments")
        for config in self.outbound_webhooks:
            if not config.url.startswith(("http://", "https://")):
                errors.append(f"Outbound webhook URL must be http(s): {config.url}")
        return errors
