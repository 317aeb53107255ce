import pytest

from udl.nodes import NodeActions, NodeStore
from udl.webhooks.registry import WebhookRegistry


@pytest.fixture(autouse=True)
def _clean_udl_env(monkeypatch):
    """Keep developer ``UDL_*`` settings from leaking into tests."""
    for name in (
        "UDL_HOST",
        "UDL_PORT",
        "UDL_INSTANCE_ID",
        "UDL_WEBHOOK_DEBOUNCE_MS",
        "UDL_WEBHOOK_MAX_QUEUE_SIZE",
        "UDL_DEFAULT_WEBHOOK_PATH",
        "UDL_OUTBOUND_WEBHOOKS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def store() -> NodeStore:
    """Fresh isolated node store per test."""
    return NodeStore()


@pytest.fixture()
def actions(store: NodeStore) -> NodeActions:
    return NodeActions(store, owner="test-plugin")


@pytest.fixture()
def registry() -> WebhookRegistry:
    """Fresh isolated webhook registry per test."""
    return WebhookRegistry()
