"""Versioned JSON document of a graph.

The document lists every node and connection of the flat maps. Viewport
state is ephemeral and is not written. Importing checks the major version,
re-validates every config payload against its node type and rejects
dangling references.
"""
import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .core import Graph
from .errors import DocumentVersionError, NotFoundError
from .models import Connection, KeyMapping, Node, Port, Position
from .node_config import parse_config
from .node_def import NodeRegistry

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.0.0"


class NodeRecord(BaseModel):
    id: str
    type: str
    category: str = ""
    name: str = ""
    position: Position = Field(default_factory=Position)
    data: Dict[str, Any] = Field(default_factory=dict)
    ports: List[Port] = Field(default_factory=list)
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)
    special_ids: List[str] = Field(default_factory=list)


class ConnectionRecord(BaseModel):
    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    kind: str
    is_bundled: bool = False
    bundle_mapping: List[KeyMapping] = Field(default_factory=list)


class GraphDocument(BaseModel):
    version: str = DOCUMENT_VERSION
    name: str = "Untitled"
    created_at: str = Field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat())
    root_node_ids: List[str] = Field(default_factory=list)
    nodes: List[NodeRecord] = Field(default_factory=list)
    connections: List[ConnectionRecord] = Field(default_factory=list)


def check_version(version: str):
    """Reject documents whose major version differs from ours."""
    if version.split(".")[0] != DOCUMENT_VERSION.split(".")[0]:
        raise DocumentVersionError(
            f"Document format v{version} is not supported (expected v{DOCUMENT_VERSION.split('.')[0]}.x)"
        )
    if version != DOCUMENT_VERSION:
        logger.warning("Document format version %s differs from %s", version, DOCUMENT_VERSION)


def export_document(graph: Graph, name: str = "Untitled") -> GraphDocument:
    nodes = [
        NodeRecord(
            id=node.id,
            type=node.type,
            category=node.category,
            name=node.name,
            position=node.position,
            data=node.data.model_dump(mode="json"),
            ports=node.ports,
            parent_id=node.parent_id,
            child_ids=node.child_ids,
            special_ids=node.special_ids,
        )
        for node in graph.nodes.values()
    ]
    connections = [ConnectionRecord(**conn.model_dump()) for conn in graph.connections.values()]
    return GraphDocument(name=name, root_node_ids=graph.root_node_ids, nodes=nodes, connections=connections)


def import_document(document: Union[GraphDocument, Dict[str, Any]], registry: Optional[NodeRegistry] = None) -> Graph:
    """Build a new graph from a document."""
    if not isinstance(document, GraphDocument):
        check_version(str(document.get("version", "0")))
        document = GraphDocument.model_validate(document)
    else:
        check_version(document.version)

    graph = Graph(registry=registry) if registry is not None else Graph()
    for record in document.nodes:
        definition = graph.registry.get_definition(record.type)
        graph.nodes[record.id] = Node(
            id=record.id,
            type=record.type,
            category=record.category or definition.category,
            name=record.name or definition.display_name,
            position=record.position,
            data=parse_config(record.type, record.data),
            ports=record.ports,
            parent_id=record.parent_id,
            child_ids=record.child_ids,
            special_ids=record.special_ids,
        )

    for node in graph.nodes.values():
        if node.parent_id is not None and node.parent_id not in graph.nodes:
            raise NotFoundError("node", node.parent_id)
        for child_id in node.child_ids + node.special_ids:
            if child_id not in graph.nodes:
                raise NotFoundError("node", child_id)

    graph.root_node_ids = list(document.root_node_ids) or [
        n.id for n in graph.nodes.values() if n.parent_id is None
    ]

    for record in document.connections:
        for node_id, port_id in ((record.source_node_id, record.source_port_id),
                                 (record.target_node_id, record.target_port_id)):
            node = graph.nodes.get(node_id)
            if node is None:
                raise NotFoundError("node", node_id)
            if node.get_port(port_id) is None:
                raise NotFoundError("port", port_id, node_id)
        graph.connections[record.id] = Connection(**record.model_dump())

    logger.info(
        "Imported '%s': %d nodes, %d connections",
        document.name, len(graph.nodes), len(graph.connections),
    )
    return graph


def write_document(document: GraphDocument, path: Union[str, Path]):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document.model_dump(mode="json"), f, indent=2, ensure_ascii=False)


def read_document(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
