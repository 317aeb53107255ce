"""Node actions bound to a store and an owning plugin."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from udl.errors import NodeNotFoundError
from udl.nodes.store import Node, NodeInternal, NodeStore, create_content_digest


def _now_ms() -> int:
    return int(time.time() * 1000)


class NodeActions:
    """Create, update and delete nodes on behalf of *owner*.

    Every node written through an instance is stamped with the owner, a
    content digest and created/modified timestamps.
    """

    def __init__(self, store: NodeStore, owner: str) -> None:
        self.store = store
        self.owner = owner

    async def create_node(
        self,
        node_id: str,
        node_type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Node:
        """Store a node, fully replacing any node with the same ID."""
        if not node_id:
            raise ValueError("Node id is required")
        if not node_type:
            raise ValueError("Node type is required")

        fields = dict(data or {})
        existing = self.store.get(node_id)
        now = _now_ms()
        node = Node(
            internal=NodeInternal(
                id=node_id,
                type=node_type,
                owner=self.owner,
                content_digest=create_content_digest(fields),
                created_at=existing.internal.created_at if existing else now,
                modified_at=now,
            ),
            fields=fields,
        )
        self.store.set(node)
        return node

    async def update_node(self, node_id: str, data: Optional[Dict[str, Any]] = None) -> Node:
        """Merge *data* into an existing node's fields."""
        existing = self.store.get(node_id)
        if existing is None:
            raise NodeNotFoundError(node_id)

        fields = {**existing.fields, **(data or {})}
        node = Node(
            internal=NodeInternal(
                id=node_id,
                type=existing.internal.type,
                owner=self.owner,
                content_digest=create_content_digest(fields),
                created_at=existing.internal.created_at,
                modified_at=_now_ms(),
            ),
            fields=fields,
        )
        self.store.set(node)
        return node

    async def delete_node(self, node_id: str) -> bool:
        return self.store.delete(node_id)

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.store.get(node_id)
