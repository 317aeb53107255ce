"""In-memory node store and the actions plugins use to mutate it."""

from udl.nodes.actions import NodeActions
from udl.nodes.store import (
    Node,
    NodeInternal,
    NodeStore,
    create_content_digest,
    create_node_id,
)

__all__ = [
    "Node",
    "NodeActions",
    "NodeInternal",
    "NodeStore",
    "create_content_digest",
    "create_node_id",
]
