"""Errors raised by the graph engine.

Every error is recoverable: the operation that raised it has left the graph
exactly as it was before the call.
"""
from typing import Optional


class GraphError(Exception):
    """Base class for all graph engine errors."""


class UnknownTypeError(GraphError):
    """A node type is not present in the registry."""

    def __init__(self, node_type: str):
        super().__init__(f"Unknown node type '{node_type}'")
        self.node_type = node_type


class NotFoundError(GraphError):
    """An operation referenced a node, port or connection that does not exist."""

    def __init__(self, kind: str, item_id: str, owner_id: Optional[str] = None):
        if owner_id:
            message = f"{kind.capitalize()} '{item_id}' not found on node '{owner_id}'"
        else:
            message = f"{kind.capitalize()} '{item_id}' not found"
        super().__init__(message)
        self.kind = kind
        self.item_id = item_id
        self.owner_id = owner_id


class IncompatiblePortsError(GraphError):
    """Port kinds differ, or a directional connection runs the wrong way."""


class DuplicateConnectionError(GraphError):
    """The exact pair of endpoints is already connected."""


class CycleError(GraphError):
    """Committing the connection would let a signal loop back on itself."""


class ConfigError(GraphError):
    """A node configuration payload failed validation."""


class NavigationError(GraphError):
    """A canvas navigation request is not legal from the current level."""


class DocumentVersionError(GraphError):
    """A persisted document was written by an incompatible format version."""
