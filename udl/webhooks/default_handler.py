"""Default webhook handler: generic create/update/upsert/delete of nodes.

Auto-registered at ``/_webhooks/{plugin}/sync`` for plugins that do not
provide their own handler. Payload format::

    {
        "operation": "upsert",
        "nodeId": "product-123",
        "nodeType": "Product",
        "data": {"title": "New Product", "price": 99.99}
    }

With ``id_field="externalId"`` the ``nodeId`` is matched against the
``externalId`` field of existing nodes instead of the internal node ID.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from starlette.requests import Request

from udl.nodes import Node, NodeStore, create_node_id
from udl.webhooks.types import WebhookHandlerContext, WebhookResponse

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_PATH = "sync"

EXPECTED_PAYLOAD = {
    "operation": "create | update | delete | upsert",
    "nodeId": "string",
    "nodeType": "string",
    "data": "object (required for create/upsert)",
}


# -----------------------------------------------------------------------
# Payload variants
# -----------------------------------------------------------------------

class _Operation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    node_id: str = Field(alias="nodeId", min_length=1, strict=True)
    node_type: str = Field(alias="nodeType", min_length=1, strict=True)


class CreateOperation(_Operation):
    operation: Literal["create"]
    data: Dict[str, Any]


class UpdateOperation(_Operation):
    operation: Literal["update"]
    data: Optional[Dict[str, Any]] = None


class UpsertOperation(_Operation):
    operation: Literal["upsert"]
    data: Dict[str, Any]


class DeleteOperation(_Operation):
    operation: Literal["delete"]
    data: Optional[Dict[str, Any]] = None


WebhookOperation = Annotated[
    Union[CreateOperation, UpdateOperation, UpsertOperation, DeleteOperation],
    Field(discriminator="operation"),
]

_operation_adapter: TypeAdapter = TypeAdapter(WebhookOperation)


def parse_operation(body: Any) -> Union[CreateOperation, UpdateOperation, UpsertOperation, DeleteOperation]:
    """Validate a webhook body into one of the four operation variants.

    Raises ``pydantic.ValidationError`` for anything else.
    """
    return _operation_adapter.validate_python(body)


# -----------------------------------------------------------------------
# Identity resolution
# -----------------------------------------------------------------------

def _as_number(text: str) -> Optional[Union[int, float]]:
    # int() and float() accept digit separators, JSON numbers do not
    if "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _loosely_equal(value: Any, node_id: str) -> bool:
    """Compare a stored field value with a webhook ``nodeId`` string.

    JSON payloads carry IDs as strings while sources often store them as
    numbers, so ``123`` matches ``"123"``.
    """
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value == node_id
    if isinstance(value, (int, float)):
        numeric = _as_number(node_id)
        return numeric is not None and value == numeric
    return False


def resolve_node(
    store: NodeStore,
    node_type: str,
    node_id: str,
    id_field: Optional[str] = None,
) -> Optional[Node]:
    """Find the node a webhook refers to.

    Without *id_field*, *node_id* is the internal node ID. With it, the
    registered field index is tried first (string, then numeric form); only
    when the index has no match does this fall back to a linear scan over all
    nodes of *node_type*. The scan is O(n) per lookup.
    """
    if not id_field:
        return store.get(node_id)

    if id_field not in store.get_registered_indexes(node_type):
        store.register_index(node_type, id_field)

    node = store.get_by_field(node_type, id_field, node_id)
    if node is not None:
        return node

    numeric = _as_number(node_id)
    if numeric is not None:
        node = store.get_by_field(node_type, id_field, numeric)
        if node is not None:
            return node

    for candidate in store.get_by_type(node_type):
        if _loosely_equal(candidate.get(id_field), node_id):
            return candidate
    return None


# -----------------------------------------------------------------------
# Handler
# -----------------------------------------------------------------------

def _validation_details(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(loc) for loc in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]


class DefaultWebhookHandler:
    """Applies CRUD webhook payloads to the node store for one plugin."""

    def __init__(self, plugin_name: str, id_field: Optional[str] = None) -> None:
        self.plugin_name = plugin_name
        self.id_field = id_field

    async def __call__(
        self,
        request: Request,
        response: WebhookResponse,
        context: WebhookHandlerContext,
    ) -> None:
        try:
            operation = parse_operation(context.body)
        except ValidationError as exc:
            logger.warning("Default webhook handler [%s]: invalid payload received", self.plugin_name)
            response.json(400, {
                "error": "Invalid payload",
                "details": _validation_details(exc),
                "expected": EXPECTED_PAYLOAD,
            })
            return

        try:
            match operation:
                case CreateOperation():
                    await self._create(operation, response, context)
                case UpdateOperation():
                    await self._update(operation, response, context)
                case UpsertOperation():
                    await self._upsert(operation, response, context)
                case DeleteOperation():
                    await self._delete(operation, response, context)
        except Exception as exc:
            logger.error("Default webhook handler error for %s: %s", self.plugin_name, exc, exc_info=True)
            if response.headers_sent:
                return
            response.json(500, {
                "error": "Internal server error",
                "message": str(exc) or "Unknown error",
            })

    # -- Operations -------------------------------------------------------

    async def _create(self, op: CreateOperation, response: WebhookResponse, context: WebhookHandlerContext) -> None:
        existing = self._resolve(context, op)
        if existing is not None:
            logger.info("Default webhook [%s]: node already exists: %s%s", self.plugin_name, op.node_id, self._lookup_info(op))
            response.json(409, {"error": "Node already exists", "nodeId": op.node_id})
            return

        internal_id = self._new_internal_id(op)
        await context.actions.create_node(internal_id, op.node_type, self._create_data(op))
        logger.info("Default webhook [%s]: created node %s:%s%s", self.plugin_name, op.node_type, internal_id, self._lookup_info(op))
        response.json(201, {"created": True, "nodeId": op.node_id, "internalId": internal_id})

    async def _update(self, op: UpdateOperation, response: WebhookResponse, context: WebhookHandlerContext) -> None:
        existing = self._resolve(context, op)
        if existing is None:
            self._not_found(op, response, "update")
            return

        internal_id = existing.internal.id
        await context.actions.update_node(internal_id, op.data)
        logger.info("Default webhook [%s]: updated node %s:%s%s", self.plugin_name, op.node_type, internal_id, self._lookup_info(op))
        response.json(200, {"updated": True, "nodeId": op.node_id, "internalId": internal_id})

    async def _upsert(self, op: UpsertOperation, response: WebhookResponse, context: WebhookHandlerContext) -> None:
        existing = self._resolve(context, op)
        if existing is not None:
            internal_id = existing.internal.id
            await context.actions.update_node(internal_id, op.data)
        else:
            internal_id = self._new_internal_id(op)
            await context.actions.create_node(internal_id, op.node_type, self._create_data(op))

        was_update = existing is not None
        logger.info(
            "Default webhook [%s]: %s node %s:%s%s",
            self.plugin_name, "updated" if was_update else "created", op.node_type, internal_id, self._lookup_info(op),
        )
        response.json(200, {
            "upserted": True,
            "nodeId": op.node_id,
            "internalId": internal_id,
            "wasUpdate": was_update,
        })

    async def _delete(self, op: DeleteOperation, response: WebhookResponse, context: WebhookHandlerContext) -> None:
        existing = self._resolve(context, op)
        if existing is None:
            self._not_found(op, response, "delete")
            return

        internal_id = existing.internal.id
        deleted = await context.actions.delete_node(internal_id)
        if not deleted:
            logger.error("Default webhook [%s]: delete failed for node %s", self.plugin_name, internal_id)
            response.json(500, {"error": "Delete failed", "nodeId": op.node_id, "internalId": internal_id})
            return

        logger.info("Default webhook [%s]: deleted node %s:%s%s", self.plugin_name, op.node_type, internal_id, self._lookup_info(op))
        response.json(200, {"deleted": True, "nodeId": op.node_id, "internalId": internal_id})

    # -- Helpers ----------------------------------------------------------

    def _resolve(self, context: WebhookHandlerContext, op: _Operation) -> Optional[Node]:
        return resolve_node(context.store, op.node_type, op.node_id, self.id_field)

    def _new_internal_id(self, op: _Operation) -> str:
        if self.id_field:
            return create_node_id(op.node_type, op.node_id)
        return op.node_id

    def _create_data(self, op: Union[CreateOperation, UpsertOperation]) -> Dict[str, Any]:
        data = dict(op.data)
        if self.id_field:
            data.setdefault(self.id_field, op.node_id)
        return data

    def _lookup_info(self, op: _Operation) -> str:
        return f" (idField: {self.id_field}={op.node_id})" if self.id_field else ""

    def _not_found(self, op: _Operation, response: WebhookResponse, action: str) -> None:
        logger.info("Default webhook [%s]: node not found for %s: %s%s", self.plugin_name, action, op.node_id, self._lookup_info(op))
        response.json(404, {
            "error": "Node not found",
            "nodeId": op.node_id,
            "idField": self.id_field or "internal.id",
        })


def create_default_webhook_handler(plugin_name: str, id_field: Optional[str] = None) -> DefaultWebhookHandler:
    """Create the default CRUD webhook handler for *plugin_name*."""
    return DefaultWebhookHandler(plugin_name, id_field=id_field)
