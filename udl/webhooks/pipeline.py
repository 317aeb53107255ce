"""Default wiring between the webhook queue and outbound delivery."""

from __future__ import annotations

import logging
from typing import List, Optional

from udl.nodes import NodeStore
from udl.webhooks.default_handler import DEFAULT_WEBHOOK_PATH
from udl.webhooks.hooks import WebhookHooks, run_batch_hook
from udl.webhooks.outbound import DeliveryResult, OutboundWebhookManager
from udl.webhooks.queue import WebhookBatch, WebhookQueue
from udl.webhooks.registry import WebhookRegistry, register_default_webhook

logger = logging.getLogger(__name__)


class WebhookPipeline:
    """Owns the registry, queue and outbound manager for one server.

    Every batch the queue flushes runs ``on_before_webhook_triggered``,
    outbound delivery, then ``on_after_webhook_triggered``.
    """

    def __init__(
        self,
        store: NodeStore,
        registry: WebhookRegistry,
        queue: WebhookQueue,
        outbound: OutboundWebhookManager,
        hooks: Optional[WebhookHooks] = None,
        default_webhook_path: str = DEFAULT_WEBHOOK_PATH,
    ) -> None:
        self.store = store
        self.registry = registry
        self.queue = queue
        self.outbound = outbound
        self.hooks = hooks or WebhookHooks()
        self.default_webhook_path = default_webhook_path
        queue.on_batch(self.handle_batch)

    def register_default_webhook(self, plugin_name: str, id_field: Optional[str] = None) -> bool:
        """Register the default CRUD handler at this server's default webhook path."""
        return register_default_webhook(self.registry, plugin_name, id_field=id_field, path=self.default_webhook_path)

    async def handle_batch(self, batch: WebhookBatch) -> List[DeliveryResult]:
        await run_batch_hook("onBeforeWebhookTriggered", self.hooks.on_before_webhook_triggered, batch, self.store)

        results = await self.outbound.trigger_all(batch)
        failed = [r for r in results if not r.success]
        if failed:
            logger.warning(
                "%d of %d outbound webhooks failed for batch of %d",
                len(failed), len(results), len(batch.webhooks),
            )

        await run_batch_hook("onAfterWebhookTriggered", self.hooks.on_after_webhook_triggered, batch, self.store)
        return results
