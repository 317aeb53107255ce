"""Webhook registry: maps plugin names to their webhook registration."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from udl.webhooks.default_handler import DEFAULT_WEBHOOK_PATH, create_default_webhook_handler
from udl.webhooks.types import SignatureVerifier, WebhookHandlerFn, WebhookRegistration

logger = logging.getLogger(__name__)


class WebhookRegistry:
    """Lookup table of webhook handlers, one registration per plugin.

    Instances are isolated; the HTTP layer and plugin loading code receive
    the registry they should use rather than reaching for a global.
    """

    def __init__(self) -> None:
        self._registrations: Dict[str, WebhookRegistration] = {}

    def register(self, plugin_name: str, registration: WebhookRegistration) -> None:
        """Register *registration* for *plugin_name*. Last write wins."""
        if plugin_name in self._registrations:
            logger.debug("Replacing webhook registration for plugin %s", plugin_name)
        self._registrations[plugin_name] = registration

    def lookup(self, plugin_name: str, path: str) -> Optional[WebhookRegistration]:
        """Return the registration only if both plugin name and path match."""
        registration = self._registrations.get(plugin_name)
        if registration is None or registration.path != path:
            return None
        return registration

    def get(self, plugin_name: str) -> Optional[WebhookRegistration]:
        return self._registrations.get(plugin_name)

    def has(self, plugin_name: str) -> bool:
        return plugin_name in self._registrations

    def unregister(self, plugin_name: str) -> bool:
        """Remove a registration. Returns True if it existed."""
        return self._registrations.pop(plugin_name, None) is not None

    def all(self) -> List[Tuple[str, WebhookRegistration]]:
        return list(self._registrations.items())

    def clear(self) -> None:
        self._registrations.clear()

    def size(self) -> int:
        return len(self._registrations)


def register_default_webhook(
    registry: WebhookRegistry,
    plugin_name: str,
    id_field: Optional[str] = None,
    path: str = DEFAULT_WEBHOOK_PATH,
) -> bool:
    """Register the default CRUD handler for *plugin_name*.

    Plugins that already registered a handler keep it. Returns True if the
    default handler was registered.
    """
    if registry.has(plugin_name):
        logger.info("Plugin %s already has a webhook handler, skipping default registration", plugin_name)
        return False

    lookup_info = f" (idField: {id_field})" if id_field else ""
    registry.register(
        plugin_name,
        WebhookRegistration(
            path=path,
            handler=create_default_webhook_handler(plugin_name, id_field=id_field),
            description=f"Default UDL sync handler for {plugin_name}{lookup_info}",
        ),
    )
    logger.info("Default webhook registered: /_webhooks/%s/%s%s", plugin_name, path, lookup_info)
    return True


def register_plugin_webhook_handler(
    registry: WebhookRegistry,
    plugin_name: str,
    handler: WebhookHandlerFn,
    path: str = DEFAULT_WEBHOOK_PATH,
    verify_signature: Optional[SignatureVerifier] = None,
    description: str = "",
) -> None:
    """Register a plugin's own handler, replacing any default one."""
    registry.register(
        plugin_name,
        WebhookRegistration(
            path=path,
            handler=handler,
            verify_signature=verify_signature,
            description=description or f"Custom webhook handler for {plugin_name}",
        ),
    )
    logger.info("Custom webhook registered: /_webhooks/%s/%s", plugin_name, path)
