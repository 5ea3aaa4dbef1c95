"""Bundle ports and growable port lists.

A growable list is the inward-facing port list of a boundary panel: the
outputs of an ``input-panel`` and the inputs of an ``output-panel``. Each
such list always ends with exactly one unconnected empty slot. Connecting
into the slot turns it into a concrete port and a fresh slot takes its
place; concrete ports that lose their last connection are pruned again,
except the first one of the list.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import NotFoundError
from .models import BundleChannel, BundleInfo, Connection, Node, Port, PortKind, generate_id
from .node_config import BundleConfig, BundleSlot

logger = logging.getLogger(__name__)

GROWABLE_DIRECTIONS = {"input-panel": "output", "output-panel": "input"}

CONTROL_TYPE_NAMES = [
    ("key", "Key"),
    ("pad", "Pad"),
    ("knob", "Knob"),
    ("fader", "Fader"),
    ("pitch", "Pitch"),
    ("mod", "Mod"),
    ("row", "Row"),
]

_PORT_NUMBER_RE = re.compile(r"^port-(\d+)$")


def growable_direction(node: Node) -> Optional[str]:
    return GROWABLE_DIRECTIONS.get(node.type)


def is_growable(node: Node, port: Port) -> bool:
    return growable_direction(node) == port.direction


def make_empty_slot(kind: PortKind, direction: str) -> Port:
    return Port(
        id=generate_id("empty"),
        name="",
        kind=kind,
        direction=direction,
        hide_external_label=True,
    )


def ensure_empty_slot(ports: List[Port], kind: PortKind, direction: str) -> List[Port]:
    """Return ``ports`` with exactly one empty slot of ``direction``, placed last."""
    slots = [p for p in ports if p.direction == direction and p.is_empty_slot]
    result = [p for p in ports if not (p.direction == direction and p.is_empty_slot)]
    result.append(slots[0] if slots else make_empty_slot(kind, direction))
    return result


def next_port_id(ports: Iterable[Port]) -> str:
    numbers = [int(m.group(1)) for m in (_PORT_NUMBER_RE.match(p.id) for p in ports) if m]
    return f"port-{max(numbers, default=0) + 1}"


def materialize_slot(
    ports: List[Port],
    slot_id: str,
    name: str = "",
    bundle: Optional[BundleInfo] = None,
) -> Tuple[List[Port], str]:
    """Turn the empty slot ``slot_id`` into a concrete port.

    The new port goes after the last concrete port of the slot's direction,
    a new empty slot is generated to replace the consumed one, and the id of
    the new concrete port is returned for retargeting the pending wire.
    """
    slot = next((p for p in ports if p.id == slot_id), None)
    if slot is None or not slot.is_empty_slot:
        raise NotFoundError("empty slot", slot_id)

    new_id = next_port_id(ports)
    concrete = [p for p in ports if p.direction == slot.direction and not p.is_empty_slot]
    if not name:
        prefix = "Out" if slot.direction == "output" else "In"
        name = f"{prefix} {len(concrete) + 1}"
    new_port = Port(
        id=new_id,
        name=name,
        kind=slot.kind,
        direction=slot.direction,
        is_bundle=bundle is not None,
        bundle=bundle,
        removable=True,
    )
    result = [p for p in ports if p.id != slot_id]
    insert_at = result.index(concrete[-1]) + 1 if concrete else 0
    result.insert(insert_at, new_port)
    result.append(make_empty_slot(slot.kind, slot.direction))
    return result, new_id


def prune_ports(ports: List[Port], direction: str, connected_ids: Set[str]) -> List[Port]:
    """Drop materialized ports of ``direction`` that no wire touches.

    The first concrete port of the list is kept even when unconnected.
    """
    concrete = [p for p in ports if p.direction == direction and not p.is_empty_slot]
    first_id = concrete[0].id if concrete else None
    pruned = {
        p.id for p in concrete
        if p.removable and p.id != first_id and p.id not in connected_ids
    }
    if pruned:
        logger.debug("Pruning unconnected ports: %s", sorted(pruned))
    return [p for p in ports if p.id not in pruned]


# --- labels ---
def control_type_name(port_id: str) -> str:
    for prefix, name in CONTROL_TYPE_NAMES:
        if port_id.startswith(prefix):
            return name
    return "Ch"


def bundle_label(source_name: str, group_label: str) -> str:
    """Display label of a bundle, e.g. ``"Keyboard Row 1"`` or ``"MiniLab3 Keys"``."""
    return f"{source_name} {group_label}".strip()


def channel_label(port: Optional[Port], port_id: str, index: int) -> str:
    """Label of one channel: the originating port's own label when it has one."""
    if port is not None and port.name:
        return port.name
    return f"{control_type_name(port_id)} {index + 1}"


def build_bundle_info(
    owner: Node,
    panel: Node,
    panel_port: Port,
    nodes: Dict[str, Node],
    connections: Iterable[Connection],
    previous: Optional[BundleInfo] = None,
) -> Optional[BundleInfo]:
    """Describe the internal wires feeding ``panel_port`` as a bundle of ``owner``."""
    channels = []
    for conn in connections:
        if conn.target_node_id != panel.id or conn.target_port_id != panel_port.id:
            continue
        origin = nodes.get(conn.source_node_id)
        origin_port = origin.get_port(conn.source_port_id) if origin else None
        channels.append(BundleChannel(
            node_id=conn.source_node_id,
            port_id=conn.source_port_id,
            label=channel_label(origin_port, conn.source_port_id, len(channels)),
        ))
    if not channels:
        return None
    return BundleInfo(
        bundle_id=f"{panel.id}:{panel_port.id}",
        label=bundle_label(owner.name, panel_port.name),
        source_node_id=owner.id,
        source_node_type=owner.type,
        source_port_id=f"{panel.id}:{panel_port.id}",
        channels=channels,
        expanded=previous.expanded if previous else False,
    )


def toggle_bundle_expansion(port: Port) -> Port:
    if port.bundle is None:
        raise NotFoundError("bundle", port.id)
    bundle = port.bundle.model_copy(update={"expanded": not port.bundle.expanded})
    return port.model_copy(update={"bundle": bundle})


# --- batch re-bundling ---
def _rebuild(config: BundleConfig, **changes) -> BundleConfig:
    values = config.model_dump()
    values.update(changes)
    return BundleConfig.model_validate(values)


def move_to_bundle(config: BundleConfig, internal_ids: Iterable[str], bundle_id: str) -> BundleConfig:
    """Move every mapping in ``internal_ids`` to ``bundle_id``.

    Both the forward map and the reverse index are updated; a member is never
    listed twice.
    """
    if bundle_id not in config.bundle_ids():
        raise NotFoundError("bundle", bundle_id)
    forward = dict(config.internal_to_bundle)
    reverse = {key: list(members) for key, members in config.bundle_to_internal.items()}
    for internal_id in dict.fromkeys(internal_ids):
        old = forward.get(internal_id)
        if old == bundle_id:
            continue
        if old is not None:
            reverse[old].remove(internal_id)
            if not reverse[old]:
                del reverse[old]
        forward[internal_id] = bundle_id
        reverse.setdefault(bundle_id, []).append(internal_id)
    return _rebuild(config, internal_to_bundle=forward, bundle_to_internal=reverse)


def unassign(config: BundleConfig, internal_ids: Iterable[str]) -> BundleConfig:
    forward = dict(config.internal_to_bundle)
    reverse = {key: list(members) for key, members in config.bundle_to_internal.items()}
    for internal_id in dict.fromkeys(internal_ids):
        old = forward.pop(internal_id, None)
        if old is None:
            continue
        reverse[old].remove(internal_id)
        if not reverse[old]:
            del reverse[old]
    return _rebuild(config, internal_to_bundle=forward, bundle_to_internal=reverse)


def create_bundle(config: BundleConfig, name: str, direction: str = "input") -> Tuple[BundleConfig, str]:
    slot = BundleSlot(id=generate_id("bundle"), name=name, direction=direction)
    key = "input_bundles" if direction == "input" else "output_bundles"
    bundles = [b.model_dump() for b in getattr(config, key)] + [slot.model_dump()]
    return _rebuild(config, **{key: bundles}), slot.id


def rename_bundle(config: BundleConfig, bundle_id: str, name: str) -> BundleConfig:
    if bundle_id not in config.bundle_ids():
        raise NotFoundError("bundle", bundle_id)
    changes = {}
    for key in ("input_bundles", "output_bundles"):
        changes[key] = [
            {**b.model_dump(), "name": name} if b.id == bundle_id else b.model_dump()
            for b in getattr(config, key)
        ]
    return _rebuild(config, **changes)


def remove_bundle(config: BundleConfig, bundle_id: str) -> BundleConfig:
    """Delete a bundle along with every mapping that pointed at it."""
    if bundle_id not in config.bundle_ids():
        raise NotFoundError("bundle", bundle_id)
    config = unassign(config, config.bundle_to_internal.get(bundle_id, []))
    changes = {
        key: [b.model_dump() for b in getattr(config, key) if b.id != bundle_id]
        for key in ("input_bundles", "output_bundles")
    }
    return _rebuild(config, **changes)
