"""Projection of special children's ports onto their parent.

A parent's port list is its own ports followed by one mirrored port per
non-hidden port of each special child, in ``special_ids`` order. Mirrored
ports carry ``mirror_of`` so they can be traced back to the child port:

- ``canvas-input`` / ``canvas-output`` project their single port under the
  child's id, named after the child's ``port_name``.
- ``input-panel`` / ``output-panel`` project every port under the composite
  id ``"panelId:portId"``; an output-panel port fed by internal wires becomes
  a bundle port.
- any other special child projects its ports as they are, with composite ids.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from .bundles import build_bundle_info
from .models import Connection, Node, Port

INPUT_SIDE_TYPES = frozenset({"canvas-input", "input-panel"})
OUTPUT_SIDE_TYPES = frozenset({"canvas-output", "output-panel"})
CANVAS_TYPES = frozenset({"canvas-input", "canvas-output"})

MAX_PORT_ID_LENGTH = 256


def composite_id(child_id: str, port_id: str) -> str:
    return f"{child_id}:{port_id}"


def split_composite_id(port_id: str) -> Optional[Tuple[str, str]]:
    """``"panel:port"`` -> ``("panel", "port")``; plain ids give ``None``."""
    if port_id.count(":") != 1:
        return None
    child_id, child_port_id = port_id.split(":")
    return child_id, child_port_id


def external_direction(child: Node, port: Port) -> str:
    if child.type in INPUT_SIDE_TYPES:
        return "input"
    if child.type in OUTPUT_SIDE_TYPES:
        return "output"
    return port.direction


def mirror_ports(parent: Node, nodes: Dict[str, Node], connections: Iterable[Connection]) -> List[Port]:
    """Compute the parent's full port list from its own and its special children's ports."""
    connections = list(connections)
    previous = {p.id: p for p in parent.ports if p.mirror_of is not None}
    result = [p for p in parent.ports if p.mirror_of is None]

    for child_id in parent.special_ids:
        child = nodes.get(child_id)
        if child is None:
            continue
        for port in child.ports:
            if port.hidden:
                continue
            if child.type in CANVAS_TYPES:
                port_id = child.id
                name = getattr(child.data, "port_name", "") or port.name
            else:
                port_id = composite_id(child.id, port.id)
                name = port.name
            mirrored = Port(
                id=port_id,
                name=name,
                kind=port.kind,
                direction=external_direction(child, port),
                is_bundle=port.is_bundle,
                bundle=port.bundle,
                hide_external_label=port.hide_external_label,
                mirror_of=port_id,
            )
            if child.type == "output-panel" and not port.is_empty_slot:
                old = previous.get(port_id)
                bundle = build_bundle_info(
                    parent, child, port, nodes, connections, old.bundle if old else None
                )
                if bundle is not None:
                    mirrored.is_bundle = True
                    mirrored.bundle = bundle
            result.append(mirrored)
            if child.type in CANVAS_TYPES:
                break
    return result


def resolve_mirror(parent: Node, port_id: str, nodes: Dict[str, Node]) -> Optional[Tuple[str, str]]:
    """Map a mirrored port id on ``parent`` back to ``(child_id, child_port_id)``."""
    port = parent.get_port(port_id)
    if port is None or port.mirror_of is None:
        return None
    parts = split_composite_id(port.mirror_of)
    if parts is not None:
        return parts
    child = nodes.get(port.mirror_of)
    if child is None or not child.ports:
        return None
    return child.id, child.ports[0].id


def is_valid_port_id(port_id: str) -> bool:
    """Plain ids start with a letter; composite ids join two plain ids with one colon."""
    if not port_id or len(port_id) > MAX_PORT_ID_LENGTH:
        return False
    parts = port_id.split(":")
    if len(parts) > 2:
        return False
    return all(_is_plain_id(part) for part in parts)


def _is_plain_id(value: str) -> bool:
    if not value or not value[0].isascii() or not value[0].isalpha():
        return False
    return all(c.isascii() and (c.isalnum() or c in "-_") for c in value)
