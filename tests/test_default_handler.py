"""Tests for the default CRUD webhook handler."""

import json

import pytest
from pydantic import ValidationError

from udl.nodes import NodeActions, NodeStore, create_node_id
from udl.webhooks.default_handler import (
    CreateOperation,
    DeleteOperation,
    create_default_webhook_handler,
    parse_operation,
    resolve_node,
)
from udl.webhooks.types import WebhookHandlerContext, WebhookResponse


async def _call(handler, store: NodeStore, body):
    """Invoke *handler* and return ``(status, json body)``."""
    context = WebhookHandlerContext(
        store=store,
        actions=NodeActions(store, owner="cms"),
        raw_body=json.dumps(body).encode(),
        body=body,
    )
    response = WebhookResponse()
    await handler(None, response, context)
    committed = response.get_response()
    return committed.status_code, json.loads(committed.body)


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def test_parse_operation_variants():
    op = parse_operation({"operation": "create", "nodeId": "p1", "nodeType": "Product", "data": {"a": 1}})
    assert isinstance(op, CreateOperation)
    assert op.node_id == "p1"
    op = parse_operation({"operation": "delete", "nodeId": "p1", "nodeType": "Product"})
    assert isinstance(op, DeleteOperation)
    assert op.data is None


@pytest.mark.parametrize(
    "body",
    [
        None,
        "not an object",
        {"operation": "merge", "nodeId": "p1", "nodeType": "Product"},
        {"operation": "create", "nodeId": "p1", "nodeType": "Product"},
        {"operation": "upsert", "nodeId": "p1", "nodeType": "Product", "data": None},
        {"operation": "update", "nodeId": 123, "nodeType": "Product"},
        {"operation": "update", "nodeId": "", "nodeType": "Product"},
        {"operation": "update", "nodeId": "p1"},
    ],
)
def test_parse_operation_rejects_invalid(body):
    with pytest.raises(ValidationError):
        parse_operation(body)


# ---------------------------------------------------------------------------
# Operations by internal ID
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_then_conflict(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    body = {"operation": "create", "nodeId": "p1", "nodeType": "Product", "data": {"title": "Shirt"}}

    status, data = await _call(handler, store, body)
    assert status == 201
    assert data == {"created": True, "nodeId": "p1", "internalId": "p1"}
    assert store.get("p1").get("title") == "Shirt"
    assert store.get("p1").internal.owner == "cms"

    status, data = await _call(handler, store, body)
    assert status == 409
    assert data == {"error": "Node already exists", "nodeId": "p1"}


@pytest.mark.asyncio
async def test_update_missing_node(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    status, data = await _call(handler, store, {"operation": "update", "nodeId": "nope", "nodeType": "Product"})
    assert status == 404
    assert data == {"error": "Node not found", "nodeId": "nope", "idField": "internal.id"}


@pytest.mark.asyncio
async def test_update_merges_data(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    await _call(handler, store, {"operation": "create", "nodeId": "p1", "nodeType": "Product", "data": {"title": "Shirt", "price": 10}})
    status, data = await _call(handler, store, {"operation": "update", "nodeId": "p1", "nodeType": "Product", "data": {"price": 12}})
    assert status == 200
    assert data == {"updated": True, "nodeId": "p1", "internalId": "p1"}
    assert store.get("p1").fields == {"title": "Shirt", "price": 12}


@pytest.mark.asyncio
async def test_upsert_reports_was_update(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    body = {"operation": "upsert", "nodeId": "p1", "nodeType": "Product", "data": {"title": "Shirt"}}

    status, data = await _call(handler, store, body)
    assert status == 200
    assert data["upserted"] is True
    assert data["wasUpdate"] is False

    status, data = await _call(handler, store, body)
    assert status == 200
    assert data["wasUpdate"] is True
    assert store.size() == 1
    assert store.get("p1").fields == {"title": "Shirt"}


@pytest.mark.asyncio
async def test_delete(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    await _call(handler, store, {"operation": "create", "nodeId": "p1", "nodeType": "Product", "data": {}})

    status, data = await _call(handler, store, {"operation": "delete", "nodeId": "p1", "nodeType": "Product"})
    assert status == 200
    assert data == {"deleted": True, "nodeId": "p1", "internalId": "p1"}
    assert store.size() == 0

    status, _ = await _call(handler, store, {"operation": "delete", "nodeId": "p1", "nodeType": "Product"})
    assert status == 404


@pytest.mark.asyncio
async def test_invalid_payload_returns_expected_shape(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    status, data = await _call(handler, store, {"operation": "create", "nodeId": "p1"})
    assert status == 400
    assert data["error"] == "Invalid payload"
    assert isinstance(data["details"], list) and data["details"]
    assert set(data["expected"]) == {"operation", "nodeId", "nodeType", "data"}
    assert store.size() == 0


@pytest.mark.asyncio
async def test_action_failure_returns_500(store: NodeStore):
    handler = create_default_webhook_handler("cms")
    body = {"operation": "create", "nodeId": "p1", "nodeType": "Product", "data": {}}
    context = WebhookHandlerContext(
        store=store,
        actions=NodeActions(store, owner="cms"),
        raw_body=b"",
        body=body,
    )

    async def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    context.actions.create_node = boom
    response = WebhookResponse()
    await handler(None, response, context)
    assert response.status_code == 500
    assert json.loads(response.get_response().body) == {"error": "Internal server error", "message": "disk full"}


# ---------------------------------------------------------------------------
# Operations by id_field
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_with_id_field_uses_derived_internal_id(store: NodeStore):
    handler = create_default_webhook_handler("cms", id_field="externalId")
    status, data = await _call(handler, store, {"operation": "create", "nodeId": "ext-1", "nodeType": "Product", "data": {"title": "Shirt"}})
    assert status == 201
    internal_id = create_node_id("Product", "ext-1")
    assert data["internalId"] == internal_id
    assert store.get(internal_id).fields == {"title": "Shirt", "externalId": "ext-1"}
    assert "externalId" in store.get_registered_indexes("Product")


@pytest.mark.asyncio
async def test_update_by_id_field_matches_numeric_value(store: NodeStore, actions: NodeActions):
    await actions.create_node("internal-1", "Product", {"externalId": 123, "title": "Shirt"})
    handler = create_default_webhook_handler("cms", id_field="externalId")

    status, data = await _call(handler, store, {"operation": "update", "nodeId": "123", "nodeType": "Product", "data": {"title": "Hat"}})
    assert status == 200
    assert data["internalId"] == "internal-1"
    assert store.get("internal-1").get("title") == "Hat"


@pytest.mark.asyncio
async def test_id_field_not_found_reports_field(store: NodeStore):
    handler = create_default_webhook_handler("cms", id_field="externalId")
    status, data = await _call(handler, store, {"operation": "delete", "nodeId": "ext-9", "nodeType": "Product"})
    assert status == 404
    assert data["idField"] == "externalId"


@pytest.mark.asyncio
async def test_upsert_by_id_field_updates_existing(store: NodeStore, actions: NodeActions):
    await actions.create_node("internal-1", "Product", {"externalId": "ext-1"})
    handler = create_default_webhook_handler("cms", id_field="externalId")
    status, data = await _call(handler, store, {"operation": "upsert", "nodeId": "ext-1", "nodeType": "Product", "data": {"price": 5}})
    assert status == 200
    assert data["wasUpdate"] is True
    assert data["internalId"] == "internal-1"
    assert store.size() == 1


# ---------------------------------------------------------------------------
# resolve_node
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_resolve_node_scan_ignores_booleans(store: NodeStore, actions: NodeActions):
    await actions.create_node("n1", "Product", {"externalId": True})
    assert resolve_node(store, "Product", "1", "externalId") is None


@pytest.mark.asyncio
async def test_resolve_node_is_scoped_to_type(store: NodeStore, actions: NodeActions):
    await actions.create_node("n1", "Collection", {"externalId": "x"})
    assert resolve_node(store, "Product", "x", "externalId") is None
    assert resolve_node(store, "Collection", "x", "externalId").internal.id == "n1"


@pytest.mark.asyncio
async def test_create_then_update_by_numeric_looking_id(store: NodeStore):
    handler = create_default_webhook_handler("cms", id_field="sku")
    _, created = await _call(handler, store, {"operation": "create", "nodeId": "42", "nodeType": "Product", "data": {"title": "Shirt"}})
    _, updated = await _call(handler, store, {"operation": "update", "nodeId": "42", "nodeType": "Product", "data": {"title": "Hat"}})
    assert updated["internalId"] == created["internalId"]
    assert store.get(created["internalId"]).fields == {"title": "Hat", "sku": "42"}


@pytest.mark.asyncio
async def test_resolve_node_index_hit_skips_scan(store: NodeStore, actions: NodeActions, monkeypatch):
    store.register_index("Product", "externalId")
    await actions.create_node("n1", "Product", {"externalId": "ext-1"})

    def no_scan(node_type):
        raise AssertionError("linear scan should not run on an index hit")

    monkeypatch.setattr(store, "get_by_type", no_scan)
    assert resolve_node(store, "Product", "ext-1", "externalId").internal.id == "n1"


@pytest.mark.asyncio
async def test_resolve_node_scans_when_index_misses(store: NodeStore, actions: NodeActions, monkeypatch):
    await actions.create_node("n1", "Product", {"sku": 1000})
    store.register_index("Product", "sku")
    monkeypatch.setattr(store, "get_by_field", lambda node_type, field_name, value: None)

    assert resolve_node(store, "Product", "1000", "sku").internal.id == "n1"
    assert resolve_node(store, "Product", "1_000", "sku") is None


@pytest.mark.asyncio
async def test_digit_separators_do_not_match_numbers(store: NodeStore, actions: NodeActions):
    await actions.create_node("n1", "Product", {"sku": 1000})
    assert resolve_node(store, "Product", "1_000", "sku") is None
    assert resolve_node(store, "Product", "1000", "sku").internal.id == "n1"
