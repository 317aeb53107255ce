"""In-memory node storage with type and field indexes."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


def create_node_id(*parts: str) -> str:
    """Return a deterministic SHA-256 node ID for *parts*.

    Parts are joined with ``":::"`` so ``("a", "bc")`` and ``("ab", "c")``
    produce different IDs.
    """
    return hashlib.sha256(":::".join(parts).encode()).hexdigest()


def create_content_digest(data: Any) -> str:
    """SHA-256 hex digest of *data* serialized with sorted keys."""
    serialized = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


@dataclass
class NodeInternal:
    """Bookkeeping metadata the store keeps for every node."""

    id: str
    type: str
    owner: str = ""
    content_digest: str = ""
    created_at: int = 0
    modified_at: int = 0


@dataclass
class Node:
    """A sourced content node: internal metadata plus user fields."""

    internal: NodeInternal
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class NodeStore:
    """In-memory node store.

    Keeps a primary ``id -> node`` map, a ``type -> ids`` bucket index and
    optional per-type field indexes registered with :meth:`register_index`.
    Field indexes use exact (hashed) matching: ``"1"`` and ``1`` are
    different keys.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, Node] = {}
        self._type_index: Dict[str, Set[str]] = {}
        # node type -> field name -> field value -> node id
        self._field_indexes: Dict[str, Dict[str, Dict[Any, str]]] = {}

    # -- Indexes ----------------------------------------------------------

    def register_index(self, node_type: str, field_name: str) -> None:
        """Index *field_name* for *node_type*, including existing nodes."""
        type_indexes = self._field_indexes.setdefault(node_type, {})
        index = type_indexes.setdefault(field_name, {})
        for node in self.get_by_type(node_type):
            value = node.fields.get(field_name)
            if _indexable(value):
                index[_index_key(value)] = node.internal.id

    def get_registered_indexes(self, node_type: str) -> List[str]:
        return list(self._field_indexes.get(node_type, {}).keys())

    def get_by_field(self, node_type: str, field_name: str, value: Any) -> Optional[Node]:
        """Look up a node through a registered field index."""
        if not _indexable(value):
            return None
        node_id = self._field_indexes.get(node_type, {}).get(field_name, {}).get(_index_key(value))
        return self._nodes.get(node_id) if node_id else None

    # -- CRUD -------------------------------------------------------------

    def set(self, node: Node) -> None:
        """Store or replace a node, keeping every index in sync."""
        node_id = node.internal.id
        node_type = node.internal.type
        existing = self._nodes.get(node_id)
        if existing is not None:
            self._unindex(existing)

        self._nodes[node_id] = node
        self._type_index.setdefault(node_type, set()).add(node_id)
        for field_name, index in self._field_indexes.get(node_type, {}).items():
            value = node.fields.get(field_name)
            if _indexable(value):
                index[_index_key(value)] = node_id

    def get(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def has(self, node_id: str) -> bool:
        return node_id in self._nodes

    def delete(self, node_id: str) -> bool:
        """Delete a node. Returns True if it existed."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return False
        self._unindex(node)
        return True

    def get_by_type(self, node_type: str) -> List[Node]:
        ids = self._type_index.get(node_type, set())
        return [self._nodes[i] for i in ids if i in self._nodes]

    def get_types(self) -> List[str]:
        return list(self._type_index.keys())

    def size(self) -> int:
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes.clear()
        self._type_index.clear()
        for type_indexes in self._field_indexes.values():
            for index in type_indexes.values():
                index.clear()

    # -- Internal ---------------------------------------------------------

    def _unindex(self, node: Node) -> None:
        node_id = node.internal.id
        node_type = node.internal.type
        ids = self._type_index.get(node_type)
        if ids is not None:
            ids.discard(node_id)
            if not ids:
                del self._type_index[node_type]
        for field_name, index in self._field_indexes.get(node_type, {}).items():
            value = node.fields.get(field_name)
            if _indexable(value) and index.get(_index_key(value)) == node_id:
                del index[_index_key(value)]


def _indexable(value: Any) -> bool:
    if value is None:
        return False
    try:
        hash(value)
    except TypeError:
        return False
    return True


def _index_key(value: Any) -> Any:
    # True == 1 and hash(True) == hash(1); keep booleans apart from numbers
    if isinstance(value, bool):
        return (bool, value)
    return value
