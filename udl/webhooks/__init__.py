"""Webhook subsystem: inbound routing, debounced batching, outbound delivery."""

from .default_handler import DEFAULT_WEBHOOK_PATH, create_default_webhook_handler
from .hooks import WebhookBatchContext, WebhookHooks, WebhookReceivedContext
from .inbound import MAX_BODY_SIZE, WebhookRequestHandler, create_webhook_router
from .outbound import (
    DeliveryResult,
    OutboundWebhookConfig,
    OutboundWebhookManager,
    TransformPayloadContext,
)
from .pipeline import WebhookPipeline
from .queue import QueuedWebhook, WebhookBatch, WebhookQueue
from .registry import WebhookRegistry, register_default_webhook, register_plugin_webhook_handler
from .signing import create_hmac_verifier, sign_payload
from .types import WebhookHandlerContext, WebhookRegistration, WebhookResponse

__all__ = [
    "DEFAULT_WEBHOOK_PATH",
    "MAX_BODY_SIZE",
    "DeliveryResult",
    "OutboundWebhookConfig",
    "OutboundWebhookManager",
    "QueuedWebhook",
    "TransformPayloadContext",
    "WebhookBatch",
    "WebhookBatchContext",
    "WebhookHandlerContext",
    "WebhookHooks",
    "WebhookPipeline",
    "WebhookQueue",
    "WebhookReceivedContext",
    "WebhookRegistration",
    "WebhookRegistry",
    "WebhookRequestHandler",
    "WebhookResponse",
    "create_default_webhook_handler",
    "create_hmac_verifier",
    "create_webhook_router",
    "register_default_webhook",
    "register_plugin_webhook_handler",
    "sign_payload",
]
