"""Webhook lifecycle hooks.

Extension points around the pipeline, configured once at startup:

- ``on_webhook_received``: runs before a webhook is queued. Return a
  (possibly transformed) webhook, or ``None`` to skip queueing it.
- ``on_before_webhook_triggered``: runs when a batch is flushed, before
  outbound delivery. Useful for cache invalidation.
- ``on_after_webhook_triggered``: runs after outbound delivery.

Hooks may be plain functions or coroutines. A failing hook is logged and
processing continues.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from udl.nodes import NodeStore
from udl.webhooks.queue import QueuedWebhook, WebhookBatch

logger = logging.getLogger(__name__)


@dataclass
class WebhookReceivedContext:
    webhook: QueuedWebhook
    store: NodeStore


@dataclass
class WebhookBatchContext:
    batch: WebhookBatch
    store: NodeStore


OnWebhookReceivedFn = Callable[
    [WebhookReceivedContext],
    Union[Optional[QueuedWebhook], Awaitable[Optional[QueuedWebhook]]],
]
BatchHookFn = Callable[[WebhookBatchContext], Union[None, Awaitable[None]]]


@dataclass
class WebhookHooks:
    on_webhook_received: Optional[OnWebhookReceivedFn] = None
    on_before_webhook_triggered: Optional[BatchHookFn] = None
    on_after_webhook_triggered: Optional[BatchHookFn] = None


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async hook and return its result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_webhook_received(
    hooks: Optional[WebhookHooks],
    webhook: QueuedWebhook,
    store: NodeStore,
) -> Optional[QueuedWebhook]:
    """Apply ``on_webhook_received``; ``None`` means skip the webhook."""
    if hooks is None or hooks.on_webhook_received is None:
        return webhook
    try:
        logger.info("Running onWebhookReceived hook...")
        result = await call_hook(hooks.on_webhook_received, WebhookReceivedContext(webhook, store))
    except Exception as exc:
        logger.error("onWebhookReceived hook error: %s", exc, exc_info=True)
        return webhook
    if result is None:
        logger.info("Webhook skipped by onWebhookReceived hook")
    return result


async def run_batch_hook(
    name: str,
    hook: Optional[BatchHookFn],
    batch: WebhookBatch,
    store: NodeStore,
) -> None:
    if hook is None:
        return
    try:
        logger.info("Running %s hook...", name)
        await call_hook(hook, WebhookBatchContext(batch, store))
    except Exception as exc:
        logger.error("%s hook error: %s", name, exc, exc_info=True)
