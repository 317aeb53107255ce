"""HTTP application serving the webhook pipeline.

    python -m udl.server

starts uvicorn with settings from the environment (see :mod:`udl.config`).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from udl.config import AppConfig, load_env
from udl.nodes import NodeStore
from udl.webhooks.hooks import WebhookHooks
from udl.webhooks.inbound import WebhookRequestHandler, create_webhook_router
from udl.webhooks.outbound import OutboundWebhookManager
from udl.webhooks.pipeline import WebhookPipeline
from udl.webhooks.queue import WebhookQueue
from udl.webhooks.registry import WebhookRegistry

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(
    config: Optional[AppConfig] = None,
    *,
    store: Optional[NodeStore] = None,
    registry: Optional[WebhookRegistry] = None,
    queue: Optional[WebhookQueue] = None,
    outbound: Optional[OutboundWebhookManager] = None,
    hooks: Optional[WebhookHooks] = None,
) -> FastAPI:
    """Build the webhook server.

    Collaborators that are not passed in are created from *config*, which
    itself defaults to a fresh :class:`AppConfig` read from the environment.
    The pipeline is exposed as ``app.state.pipeline``.
    """
    config = config or AppConfig()
    store = store if store is not None else NodeStore()
    registry = registry if registry is not None else WebhookRegistry()
    queue = queue if queue is not None else WebhookQueue(
        debounce_ms=config.webhook_debounce_ms,
        max_queue_size=config.webhook_max_queue_size,
    )
    outbound = outbound if outbound is not None else OutboundWebhookManager(
        config.outbound_webhooks, source=config.instance_id
    )
    pipeline = WebhookPipeline(
        store, registry, queue, outbound, hooks,
        default_webhook_path=config.default_webhook_path,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Flush buffered webhooks on shutdown so they are still delivered."""
        logger.info(
            "Webhook server ready: %d handlers, %d outbound webhooks",
            registry.size(), outbound.config_count(),
        )
        yield
        if queue.size():
            logger.info("Flushing %d queued webhooks before shutdown...", queue.size())
        await queue.flush()
        logger.info("Webhook queue drained")

    app = FastAPI(title="UDL Webhooks", version=API_VERSION, lifespan=lifespan)
    app.state.config = config
    app.state.pipeline = pipeline

    handler = WebhookRequestHandler(registry, store, queue=queue, hooks=pipeline.hooks)
    app.include_router(create_webhook_router(handler))

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "instance": config.instance_id,
            "webhooks": registry.size(),
            "queued": queue.size(),
        }

    return app


def main() -> None:
    load_env()
    config = AppConfig()
    configure_logging(config.log_level)
    for error in config.validate():
        logger.warning(f"Config: {error}")

    import uvicorn
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level)


# For direct execution
if __name__ == "__main__":
    main()
