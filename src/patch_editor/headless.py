"""
Inspect a saved graph document without a GUI.

Prints the node hierarchy with resolved ports and re-checks every stored
connection against the current catalogue and validation rules.
"""
import logging
from pathlib import Path
from typing import List, Optional

from .core import Graph
from .errors import GraphError
from .node_def import load_registry
from .settings import get_setting, init_settings
from .validation import check_compatible, would_create_cycle

logger = logging.getLogger(__name__)


def check_connections(graph: Graph) -> List[str]:
    """Problems found in the stored connections, one message each."""
    problems = []
    for conn in graph.connections.values():
        source_node = graph.nodes.get(conn.source_node_id)
        target_node = graph.nodes.get(conn.target_node_id)
        source = source_node.get_port(conn.source_port_id) if source_node else None
        target = target_node.get_port(conn.target_port_id) if target_node else None
        if source is None or target is None:
            problems.append(f"{conn.id}: endpoint missing")
            continue
        try:
            check_compatible(source, target)
        except GraphError as e:
            problems.append(f"{conn.id}: {e}")
            continue
        others = [c for c in graph.connections.values() if c.id != conn.id]
        if would_create_cycle(graph.nodes, others, conn.source_node_id, conn.target_node_id):
            problems.append(f"{conn.id}: part of a cycle")
    return problems


def format_tree(graph: Graph, parent_id: Optional[str] = None, indent: int = 0) -> List[str]:
    lines = []
    for node in graph.get_children(parent_id):
        pad = "  " * indent
        lines.append(f"{pad}- {node.name} [{node.type}] {node.id}")
        for port in node.ports:
            if port.is_empty_slot:
                continue
            arrow = "<-" if port.direction == "input" else "->"
            extra = f" bundle({port.bundle.size})" if port.bundle else ""
            lines.append(f"{pad}    {arrow} {port.id} '{port.name}' {port.kind}{extra}")
        lines.extend(format_tree(graph, node.id, indent + 1))
    return lines


def run_headless(graph_file: Path, config_file: Optional[Path] = None, show_tree: bool = True) -> int:
    """Load and check ``graph_file``. Returns a process exit code."""
    init_settings(config_file)
    logging.basicConfig(level=get_setting("logging.level", "INFO"))

    registry = load_registry(Path(p) for p in get_setting("catalog.search_paths", []))
    try:
        graph = Graph.load(graph_file, registry=registry)
    except GraphError as e:
        print(f"Error: {e}")
        return 1

    print(f"Loaded {graph_file}: {len(graph.nodes)} nodes, {len(graph.connections)} connections")
    if show_tree:
        for line in format_tree(graph):
            print(line)

    problems = check_connections(graph)
    for problem in problems:
        print(f"Problem: {problem}")
    if problems:
        return 1
    print("All connections are valid.")
    return 0
