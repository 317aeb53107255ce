"""Inbound webhook HTTP handler.

Routes ``POST /_webhooks/{plugin}/{path}`` to the plugin's registered
handler, then queues the webhook so downstream destinations are notified
once per batch.

Request processing order: method check, URL parsing, capped body read,
registry lookup, signature verification, JSON parsing, dispatch. Every
rejection is a JSON body of the form ``{"error": "..."}``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from fastapi import APIRouter
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, Response

from udl.nodes import NodeActions, NodeStore
from udl.webhooks.hooks import WebhookHooks, call_hook, run_webhook_received
from udl.webhooks.queue import QueuedWebhook, WebhookQueue, now_ms
from udl.webhooks.registry import WebhookRegistry
from udl.webhooks.types import WebhookHandlerContext, WebhookResponse, lower_headers

logger = logging.getLogger(__name__)

WEBHOOK_PATH_PREFIX = "/_webhooks/"
MAX_BODY_SIZE = 1024 * 1024  # 1 MiB

WEBHOOK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class PayloadTooLargeError(Exception):
    """Raised when a request body exceeds the size cap."""


def _error_response(
    status: int,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message}, headers=headers)


def is_webhook_request(path: str) -> bool:
    return path.startswith(WEBHOOK_PATH_PREFIX)


def parse_webhook_path(raw_path: str) -> Optional[Tuple[str, str]]:
    """Split ``/_webhooks/{plugin}/{path...}`` into ``(plugin, path)``.

    Segments are percent-decoded one at a time, so a scoped plugin name can
    be addressed as ``%40org%2Fname``. Returns None if either part is
    missing or the path contains empty segments.
    """
    path = raw_path.split("?", 1)[0]
    if not is_webhook_request(path):
        return None
    segments = [unquote(s) for s in path[len(WEBHOOK_PATH_PREFIX):].split("/")]
    plugin_name, rest = segments[0], segments[1:]
    if not plugin_name or not rest or any(not s for s in rest):
        return None
    return plugin_name, "/".join(rest)


def _raw_path(request: Request) -> str:
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1")
    return request.url.path


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


async def read_body(request: Request, limit: int = MAX_BODY_SIZE) -> bytes:
    """Read the request body, stopping as soon as it exceeds *limit* bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(f"Declared body size {declared} exceeds {limit} bytes")

    chunks: List[bytes] = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > limit:
            raise PayloadTooLargeError(f"Body exceeds {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


class WebhookRequestHandler:
    """HTTP entry point for plugin webhooks.

    Parameters
    ----------
    registry:
        Registry the plugin handlers were registered in.
    store:
        Node store handed to handlers through their context.
    queue:
        Optional queue; successfully handled webhooks are enqueued here.
    hooks:
        Optional lifecycle hooks (``on_webhook_received`` is used here).
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        store: NodeStore,
        queue: Optional[WebhookQueue] = None,
        hooks: Optional[WebhookHooks] = None,
        max_body_size: int = MAX_BODY_SIZE,
    ) -> None:
        self._registry = registry
        self._store = store
        self._queue = queue
        self._hooks = hooks
        self._max_body_size = max_body_size

    async def handle(self, request: Request) -> Response:
        if request.method != "POST":
            return _error_response(405, "Method not allowed")

        parsed = parse_webhook_path(_raw_path(request))
        if parsed is None:
            return _error_response(404, "Invalid webhook URL format")
        plugin_name, path = parsed
        logger.info(f"Webhook received: {plugin_name}/{path}")

        try:
            raw_body = await read_body(request, self._max_body_size)
        except PayloadTooLargeError as exc:
            logger.warning(f"Rejecting webhook {plugin_name}/{path}: {exc}")
            # Connection: close, so the unread remainder of the body is never drained
            return _error_response(413, "Payload too large", headers={"Connection": "close"})
        except ClientDisconnect:
            logger.warning(f"Client disconnected while sending webhook {plugin_name}/{path}")
            return _error_response(400, "Failed to read request body")

        registration = self._registry.lookup(plugin_name, path)
        if registration is None:
            return _error_response(404, "Webhook handler not found")

        headers = lower_headers(request.headers)

        if registration.verify_signature is not None:
            try:
                valid = await call_hook(registration.verify_signature, raw_body, headers)
            except Exception as exc:
                logger.error(f"Signature verification error for {plugin_name}: {exc}", exc_info=True)
                return _error_response(401, "Signature verification failed")
            if not valid:
                return _error_response(401, "Invalid signature")

        body: Any = None
        if _is_json(headers.get("content-type", "")):
            try:
                body = json.loads(raw_body)
            except (ValueError, RecursionError):
                return _error_response(400, "Invalid JSON body")

        context = WebhookHandlerContext(
            store=self._store,
            actions=NodeActions(self._store, owner=plugin_name),
            raw_body=raw_body,
            body=body,
        )
        response = WebhookResponse()
        try:
            await registration.handler(request, response, context)
        except Exception as exc:
            committed = response.get_response()
            if committed is not None:
                logger.error(
                    f"Webhook handler for {plugin_name}/{path} failed after sending a response: {exc}",
                    exc_info=True,
                )
                return committed
            logger.error(f"Webhook handler error for {plugin_name}/{path}: {exc}", exc_info=True)
            return _error_response(500, "Internal server error")

        committed = response.get_response()
        if committed is None:
            committed = JSONResponse(status_code=200, content={"received": True})

        if committed.status_code < 400:
            await self._enqueue(plugin_name, raw_body, body, headers)
        return committed

    async def _enqueue(self, plugin_name: str, raw_body: bytes, body: Any, headers: Dict[str, str]) -> None:
        if self._queue is None:
            return
        webhook = QueuedWebhook(
            plugin_name=plugin_name,
            raw_body=raw_body,
            body=body,
            headers=headers,
            timestamp=now_ms(),
        )
        webhook = await run_webhook_received(self._hooks, webhook, self._store)
        if webhook is not None:
            self._queue.enqueue(webhook)


def create_webhook_router(handler: WebhookRequestHandler) -> APIRouter:
    """Mount *handler* on ``/_webhooks`` for every HTTP method.

    All methods are routed so non-POST requests get the webhook 405 body
    rather than the framework's default.
    """
    router = APIRouter()

    async def webhook_endpoint(request: Request) -> Response:
        return await handler.handle(request)

    router.add_api_route("/_webhooks", webhook_endpoint, methods=WEBHOOK_METHODS, include_in_schema=False)
    router.add_api_route("/_webhooks/{rest:path}", webhook_endpoint, methods=WEBHOOK_METHODS, include_in_schema=False)
    return router
