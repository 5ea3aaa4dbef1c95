"""Connection validation and cycle detection.

The checks run in a fixed order and the first failure wins:

1. both ports exist on the stated nodes (``NotFoundError``)
2. the port kinds are equal (``IncompatiblePortsError``)
3. directional kinds run output -> input (``IncompatiblePortsError``)
4. the same endpoints are not wired yet (``DuplicateConnectionError``)
5. the wire would not close a cycle (``CycleError``)

Cycle detection looks at the whole flat graph at once. Every node has an
entry side and an exit side with signal flowing entry -> exit. Wires run
from a source's exit to a target's entry. A parent's entry feeds its
input-side special children and its output-side special children feed the
parent's exit, so paths through sub-graph boundaries are followed.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import CycleError, DuplicateConnectionError, IncompatiblePortsError, NotFoundError
from .models import Connection, Node, Port, PortKind
from .port_sync import INPUT_SIDE_TYPES, OUTPUT_SIDE_TYPES

Vertex = Tuple[str, str]

ENTRY = "in"
EXIT = "out"


def _require_port(nodes: Dict[str, Node], node_id: str, port_id: str) -> Port:
    node = nodes.get(node_id)
    if node is None:
        raise NotFoundError("node", node_id)
    port = node.get_port(port_id)
    if port is None:
        raise NotFoundError("port", port_id, node_id)
    return port


def check_compatible(source: Port, target: Port):
    if source.kind != target.kind:
        raise IncompatiblePortsError(
            f"Cannot connect {source.kind} port '{source.id}' to {target.kind} port '{target.id}'"
        )
    if source.is_directional and not (source.direction == "output" and target.direction == "input"):
        raise IncompatiblePortsError(
            f"{source.kind.capitalize()} connections must run from an output to an input "
            f"(got {source.direction} '{source.id}' -> {target.direction} '{target.id}')"
        )


def build_adjacency(nodes: Dict[str, Node], connections: Iterable[Connection]) -> Dict[Vertex, List[Vertex]]:
    adjacency: Dict[Vertex, List[Vertex]] = {}
    for node in nodes.values():
        adjacency.setdefault((node.id, ENTRY), []).append((node.id, EXIT))
        for child_id in node.special_ids:
            child = nodes.get(child_id)
            if child is None:
                continue
            if child.type in INPUT_SIDE_TYPES:
                adjacency[(node.id, ENTRY)].append((child.id, ENTRY))
            elif child.type in OUTPUT_SIDE_TYPES:
                adjacency.setdefault((child.id, EXIT), []).append((node.id, EXIT))
    for conn in connections:
        adjacency.setdefault((conn.source_node_id, EXIT), []).append((conn.target_node_id, ENTRY))
    return adjacency


def would_create_cycle(
    nodes: Dict[str, Node],
    connections: Iterable[Connection],
    source_node_id: str,
    target_node_id: str,
    max_depth: Optional[int] = None,
) -> bool:
    """Whether wiring ``source_node_id`` -> ``target_node_id`` closes a loop.

    Depth-first walk from the target's entry side; reaching the source's exit
    side means the new wire would complete a cycle. A walk deeper than
    ``max_depth`` is reported as a cycle as well.
    """
    if max_depth is None:
        max_depth = 2 * len(nodes) + 2
    adjacency = build_adjacency(nodes, connections)
    goal = (source_node_id, EXIT)
    start = (target_node_id, ENTRY)
    visited: Set[Vertex] = {start}
    stack = [(start, 0)]
    while stack:
        vertex, depth = stack.pop()
        if vertex == goal:
            return True
        if depth >= max_depth:
            return True
        for neighbour in adjacency.get(vertex, []):
            if neighbour not in visited:
                visited.add(neighbour)
                stack.append((neighbour, depth + 1))
    return False


def validate_connection(
    nodes: Dict[str, Node],
    connections: Dict[str, Connection],
    source_node_id: str,
    source_port_id: str,
    target_node_id: str,
    target_port_id: str,
    max_depth: Optional[int] = None,
) -> PortKind:
    """Run every check on a prospective wire and return its kind."""
    source = _require_port(nodes, source_node_id, source_port_id)
    target = _require_port(nodes, target_node_id, target_port_id)
    check_compatible(source, target)

    endpoints = (source_node_id, source_port_id, target_node_id, target_port_id)
    for conn in connections.values():
        if conn.endpoints == endpoints:
            raise DuplicateConnectionError(
                f"'{source_node_id}.{source_port_id}' is already connected to "
                f"'{target_node_id}.{target_port_id}' ({conn.id})"
            )

    if would_create_cycle(nodes, connections.values(), source_node_id, target_node_id, max_depth):
        raise CycleError(
            f"Connecting '{source_node_id}' to '{target_node_id}' would create a cycle"
        )
    return source.kind
