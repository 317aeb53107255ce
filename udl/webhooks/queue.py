"""Webhook queue with debouncing.

Batches incoming webhooks and hands them to subscribers after a quiet
period, so N rapid webhooks trigger one downstream cycle instead of N.

    queue = WebhookQueue(debounce_ms=5000)
    queue.on_batch(manager.trigger_all)

    queue.enqueue(webhook1)
    queue.enqueue(webhook2)  # restarts the 5 s timer
    # ... 5 s of quiet later, both are delivered in one batch
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 5000
DEFAULT_MAX_QUEUE_SIZE = 100


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class QueuedWebhook:
    """A received webhook waiting to be batched."""

    plugin_name: str
    raw_body: bytes
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class WebhookBatch:
    """Webhooks flushed together after a quiet period, in arrival order."""

    webhooks: Tuple[QueuedWebhook, ...]
    started_at: int
    completed_at: int


BatchCallback = Callable[[WebhookBatch], Union[None, Awaitable[Any]]]


class WebhookQueue:
    """Debounced webhook buffer.

    Parameters
    ----------
    debounce_ms:
        Quiet period after the last enqueue before the buffer is flushed.
    max_queue_size:
        Buffer size that forces an immediate flush regardless of debounce.

    All methods must be called from the event loop thread. There is at most
    one pending timer per queue; each :meth:`enqueue` cancels and re-arms it.
    """

    def __init__(
        self,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
    ) -> None:
        if debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        self._debounce_ms = debounce_ms
        self._max_queue_size = max_queue_size
        self._buffer: List[QueuedWebhook] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._subscribers: List[BatchCallback] = []
        self._deliveries: Set[asyncio.Task] = set()

    # -- Subscribers ------------------------------------------------------

    def on_batch(self, callback: BatchCallback) -> None:
        """Call *callback* with every flushed batch. Sync or async."""
        self._subscribers.append(callback)

    # -- Queueing ---------------------------------------------------------

    def enqueue(self, webhook: QueuedWebhook) -> None:
        """Buffer *webhook* and restart the debounce timer."""
        self._buffer.append(webhook)
        logger.info("Webhook queued: %s (%d in queue)", webhook.plugin_name, len(self._buffer))

        self._cancel_timer()
        if len(self._buffer) >= self._max_queue_size:
            logger.info("Queue reached max size (%d), processing immediately", self._max_queue_size)
            self._flush_now()
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_ms / 1000, self._on_timer)

    async def flush(self) -> None:
        """Flush immediately and wait for subscribers to finish.

        Used on shutdown so buffered webhooks are not lost.
        """
        self._cancel_timer()
        self._flush_now()
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    def clear(self) -> None:
        """Drop buffered webhooks without delivering them."""
        self._cancel_timer()
        self._buffer = []

    # -- Introspection ----------------------------------------------------

    def size(self) -> int:
        return len(self._buffer)

    def pending(self) -> bool:
        """True while a debounce timer is armed."""
        return self._timer is not None

    def processing(self) -> bool:
        """True while a flushed batch is still being delivered."""
        return bool(self._deliveries)

    @property
    def debounce_ms(self) -> int:
        return self._debounce_ms

    @property
    def max_queue_size(self) -> int:
        return self._max_queue_size

    # -- Internal ---------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_now()

    def _flush_now(self) -> None:
        if not self._buffer:
            return
        webhooks = tuple(self._buffer)
        self._buffer = []
        batch = WebhookBatch(
            webhooks=webhooks,
            started_at=webhooks[0].timestamp,
            completed_at=now_ms(),
        )
        logger.info("Processing webhook batch: %d webhooks", len(webhooks))

        task = asyncio.get_running_loop().create_task(self._deliver(batch))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, batch: WebhookBatch) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(batch)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Webhook batch subscriber failed: %s", exc, exc_info=True)
        logger.info(
            "Webhook batch complete: %d processed in %dms",
            len(batch.webhooks), now_ms() - batch.started_at,
        )
