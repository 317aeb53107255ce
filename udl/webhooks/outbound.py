"""Outbound webhook delivery after a batch has been processed.

Notifies external systems (deploy hooks, CI, caches) once per batch rather
than once per inbound webhook. Every destination is delivered independently
with its own retry budget and linear backoff: after failed attempt ``n`` the
manager waits ``retry_delay_ms * n`` before trying again.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from udl.webhooks.queue import WebhookBatch

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------
# Delivery constants
# -----------------------------------------------------------------------

BATCH_COMPLETE_EVENT = "batch-complete"
INSTANCE_ID_ENV = "UDL_INSTANCE_ID"
DEFAULT_SOURCE = "UDL"
USER_AGENT = "UDL-Webhook/1.0"

DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
WEBHOOK_DELIVERY_TIMEOUT = 10.0  # seconds per attempt


# -----------------------------------------------------------------------
# Payload context
# -----------------------------------------------------------------------

@dataclass
class TransformPayloadContext:
    """Everything a destination may want to know about a completed batch."""

    batch: WebhookBatch
    event: str
    timestamp: str
    source: str
    summary: Dict[str, Any]
    items: List[Dict[str, Any]]

    def to_payload(self) -> Dict[str, Any]:
        """Default wire payload: the context without the raw batch."""
        return {
            "event": self.event,
            "timestamp": self.timestamp,
            "source": self.source,
            "summary": self.summary,
            "items": self.items,
        }


def build_payload_context(batch: WebhookBatch, source: Optional[str] = None) -> TransformPayloadContext:
    plugins = list(dict.fromkeys(w.plugin_name for w in batch.webhooks))
    return TransformPayloadContext(
        batch=batch,
        event=BATCH_COMPLETE_EVENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source=source or os.environ.get(INSTANCE_ID_ENV) or DEFAULT_SOURCE,
        summary={"webhookCount": len(batch.webhooks), "plugins": plugins},
        items=[
            {
                "pluginName": w.plugin_name,
                "body": w.body,
                "headers": dict(w.headers),
                "timestamp": w.timestamp,
            }
            for w in batch.webhooks
        ],
    )


# -----------------------------------------------------------------------
# Configuration and results
# -----------------------------------------------------------------------

class OutboundWebhookConfig(BaseModel):
    """A destination notified after every batch.

    Accepts snake_case or camelCase keys, so it can be built in code or
    loaded from JSON configuration.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(..., min_length=1)
    method: Literal["POST", "GET"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    retries: int = Field(DEFAULT_RETRIES, ge=0)
    retry_delay_ms: int = Field(DEFAULT_RETRY_DELAY_MS, ge=0, alias="retryDelayMs")
    transform_payload: Optional[Callable[[TransformPayloadContext], Any]] = Field(
        None, alias="transformPayload", exclude=True
    )
    timeout: float = Field(WEBHOOK_DELIVERY_TIMEOUT, gt=0)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


@dataclass
class DeliveryResult:
    """Outcome of delivering one batch to one destination."""

    url: str
    success: bool
    attempts: int
    error: Optional[str] = None


# -----------------------------------------------------------------------
# OutboundWebhookManager
# -----------------------------------------------------------------------

class OutboundWebhookManager:
    """Fans a completed batch out to every configured destination.

    ``trigger_all`` never raises: each destination gets a
    :class:`DeliveryResult` and callers decide what to do with failures.
    """

    def __init__(
        self,
        configs: Sequence[OutboundWebhookConfig] = (),
        source: Optional[str] = None,
    ) -> None:
        self._configs: List[OutboundWebhookConfig] = list(configs)
        self._source = source

    def config_count(self) -> int:
        return len(self._configs)

    @property
    def configs(self) -> List[OutboundWebhookConfig]:
        return list(self._configs)

    async def trigger_all(self, batch: WebhookBatch) -> List[DeliveryResult]:
        """Deliver *batch* to all destinations concurrently."""
        if not self._configs:
            return []

        settled = await asyncio.gather(
            *(self.trigger(config, batch) for config in self._configs),
            return_exceptions=True,
        )

        results: List[DeliveryResult] = []
        for config, outcome in zip(self._configs, settled):
            if isinstance(outcome, BaseException):
                logger.error("Outbound webhook failed: %s - %s", config.url, outcome)
                outcome = DeliveryResult(url=config.url, success=False, attempts=0, error=str(outcome))
            elif outcome.success:
                logger.info("Outbound webhook sent: %s", config.url)
            else:
                logger.error("Outbound webhook failed: %s - %s", config.url, outcome.error)
            results.append(outcome)
        return results

    async def trigger(self, config: OutboundWebhookConfig, batch: WebhookBatch) -> DeliveryResult:
        """Deliver *batch* to a single destination, retrying on failure."""
        context = build_payload_context(batch, self._source)
        try:
            if config.transform_payload is not None:
                payload = config.transform_payload(context)
                if inspect.isawaitable(payload):
                    payload = await payload
            else:
                payload = context.to_payload()
            content = json.dumps(payload, default=str).encode()
        except Exception as exc:
            logger.error("Outbound webhook payload transform failed for %s: %s", config.url, exc, exc_info=True)
            return DeliveryResult(url=config.url, success=False, attempts=0, error=f"Payload transform failed: {exc}")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            **config.headers,
        }

        last_error: Optional[str] = None
        for attempt in range(1, config.retries + 2):
            try:
                async with httpx.AsyncClient(timeout=config.timeout) as client:
                    resp = await client.request(config.method, config.url, content=content, headers=headers)
                if 200 <= resp.status_code < 300:
                    return DeliveryResult(url=config.url, success=True, attempts=attempt)
                last_error = f"HTTP {resp.status_code}: {resp.reason_phrase}"
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__

            if attempt <= config.retries:
                delay_ms = config.retry_delay_ms * attempt
                logger.warning(
                    "Outbound webhook retry %d/%d: %s (waiting %dms)",
                    attempt, config.retries, config.url, delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000)

        return DeliveryResult(
            url=config.url,
            success=False,
            attempts=config.retries + 1,
            error=last_error or "Unknown error",
        )
