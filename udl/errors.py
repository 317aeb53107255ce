"""Exception hierarchy for the Universal Data Layer."""


class UDLError(Exception):
    """Base exception for all UDL errors."""


class NodeNotFoundError(UDLError):
    """Raised when an action targets a node that is not in the store."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class ConfigError(UDLError):
    """Raised when configuration cannot be parsed."""
