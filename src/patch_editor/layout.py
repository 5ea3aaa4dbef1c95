"""Port positions, normalized to the node bounds (0..1 on both axes).

A port with a fixed ``position`` keeps it. The remaining ports of each
direction are spread over the direction's area: vertical nodes put inputs
on the left edge and outputs on the right, horizontal nodes put inputs on
the top edge and outputs on the bottom.
"""
from typing import Dict, Optional

from .models import Node, Port, Position
from .node_def import NodeDefinition

AREA_START = 0.2
AREA_END = 0.8
HORIZONTAL_START = 0.1
HORIZONTAL_END = 0.9


def _spread(index: int, total: int, start: float, end: float) -> float:
    if total == 1:
        return (start + end) / 2
    return start + index * (end - start) / (total - 1)


def port_position(node: Node, port: Port, layout: str = "vertical") -> Position:
    if port.position is not None:
        return port.position
    dynamic = [p for p in node.ports if p.direction == port.direction and p.position is None]
    index = next(i for i, p in enumerate(dynamic) if p.id == port.id)
    edge = 0.0 if port.direction == "input" else 1.0
    if layout == "horizontal":
        return Position(x=_spread(index, len(dynamic), HORIZONTAL_START, HORIZONTAL_END), y=edge)
    return Position(x=edge, y=_spread(index, len(dynamic), AREA_START, AREA_END))


def port_positions(node: Node, definition: Optional[NodeDefinition] = None) -> Dict[str, Position]:
    """Normalized position of every port of ``node``."""
    layout = definition.port_layout if definition else "vertical"
    return {port.id: port_position(node, port, layout) for port in node.ports}


def canvas_port_positions(node: Node, definition: NodeDefinition) -> Dict[str, Position]:
    """Port positions in the parent's coordinate space."""
    return {
        port_id: Position(
            x=node.position.x + pos.x * definition.width,
            y=node.position.y + pos.y * definition.height,
        )
        for port_id, pos in port_positions(node, definition).items()
    }


def find_port_at(node: Node, definition: NodeDefinition, point: Position, threshold: float = 15.0) -> Optional[str]:
    """Id of the port within ``threshold`` canvas units of ``point``, if any."""
    for port_id, pos in canvas_port_positions(node, definition).items():
        if (pos.x - point.x) ** 2 + (pos.y - point.y) ** 2 <= threshold ** 2:
            return port_id
    return None
