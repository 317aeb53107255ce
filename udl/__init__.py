"""UDL webhooks: keep a node store in sync from plugin webhooks."""

from udl.errors import ConfigError, NodeNotFoundError, UDLError

__all__ = [
    "ConfigError",
    "NodeNotFoundError",
    "UDLError",
]

__version__ = "0.1.0"
