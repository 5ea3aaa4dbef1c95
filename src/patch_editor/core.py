import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel, Field, PrivateAttr

from . import bundles
from .dynamic_ports import PARENT_DRIVEN_TYPES, generate_ports, has_generator
from .errors import ConfigError, NavigationError, NotFoundError
from .internals import template_for
from .models import Connection, KeyMapping, Node, Port, Position, generate_id
from .node_config import BundleConfig, InstrumentConfig, InstrumentRow, NodeConfig, parse_config
from .node_def import NodeRegistry, default_registry
from .port_sync import composite_id, is_valid_port_id, mirror_ports, resolve_mirror
from .settings import get_setting
from .validation import validate_connection

logger = logging.getLogger(__name__)

PositionLike = Union[Position, Dict[str, float], Tuple[float, float], None]


def _as_position(value: PositionLike) -> Position:
    if value is None:
        return Position()
    if isinstance(value, Position):
        return value.model_copy()
    if isinstance(value, dict):
        return Position(**value)
    x, y = value
    return Position(x=x, y=y)


def _restore(items: Dict[str, Any], saved: List[Tuple[BaseModel, BaseModel]]) -> Dict[str, Any]:
    """Put the snapshot field values back onto the original models, in order."""
    items.clear()
    for original, copy in saved:
        for name in type(copy).model_fields:
            setattr(original, name, getattr(copy, name))
        items[original.id] = original
    return items


class Graph(BaseModel):
    """
    The mutable source of truth of one patch: flat maps of every node and
    every connection across all hierarchy levels, the ordered root level and
    the current selection.

    Graphs are plain objects; create as many as needed. Each public mutating
    method either completes or raises and leaves the graph untouched.
    """
    model_config = {"arbitrary_types_allowed": True}

    id: str = Field(default_factory=lambda: generate_id("graph"))
    nodes: Dict[str, Node] = Field(default_factory=dict)
    connections: Dict[str, Connection] = Field(default_factory=dict)
    root_node_ids: List[str] = Field(default_factory=list)
    selected_node_ids: List[str] = Field(default_factory=list)
    selected_connection_ids: List[str] = Field(default_factory=list)
    registry: NodeRegistry = Field(default_factory=default_registry, exclude=True)
    max_traversal_depth: Optional[int] = Field(default=None, exclude=True)

    _tx_depth: int = PrivateAttr(default=0)

    # --- transactions ---
    @contextmanager
    def _transaction(self):
        if self._tx_depth:
            yield
            return
        # rollback restores the original objects so callers' handles stay live
        nodes, connections = self.nodes, self.connections
        saved_nodes = [(n, n.model_copy(deep=True)) for n in nodes.values()]
        saved_connections = [(c, c.model_copy(deep=True)) for c in connections.values()]
        lists = {
            name: (getattr(self, name), list(getattr(self, name)))
            for name in ("root_node_ids", "selected_node_ids", "selected_connection_ids")
        }
        self._tx_depth += 1
        try:
            yield
        except Exception:
            self.nodes = _restore(nodes, saved_nodes)
            self.connections = _restore(connections, saved_connections)
            for name, (original, items) in lists.items():
                original[:] = items
                setattr(self, name, original)
            raise
        finally:
            self._tx_depth -= 1

    def _max_depth(self) -> Optional[int]:
        if self.max_traversal_depth is not None:
            return self.max_traversal_depth
        return get_setting("graph.max_traversal_depth")

    # --- queries ---
    def get_node(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NotFoundError("node", node_id) from None

    def get_connection(self, connection_id: str) -> Connection:
        try:
            return self.connections[connection_id]
        except KeyError:
            raise NotFoundError("connection", connection_id) from None

    def get_children(self, node_id: Optional[str]) -> List[Node]:
        """Nodes of one level: the root level when ``node_id`` is None."""
        ids = self.root_node_ids if node_id is None else self.get_node(node_id).child_ids
        return [self.nodes[i] for i in ids]

    def descendants(self, node_id: str) -> List[str]:
        """``node_id`` and every node below it, parents before children."""
        result = []
        stack = [node_id]
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self.nodes[current].child_ids))
        return result

    def connections_for_node(self, node_id: str) -> List[Connection]:
        self.get_node(node_id)
        return [c for c in self.connections.values() if c.touches(node_id)]

    def connections_for_port(self, node_id: str, port_id: str) -> List[Connection]:
        return [c for c in self.connections.values() if c.touches(node_id, port_id)]

    def nodes_by_type(self, node_type: str) -> List[Node]:
        return [n for n in self.nodes.values() if n.type == node_type]

    def resolved_ports(self, node_id: str) -> List[Port]:
        return list(self.get_node(node_id).ports)

    def is_enterable(self, node_id: str) -> bool:
        node = self.get_node(node_id)
        return bool(node.child_ids) or self.registry.get_definition(node.type).can_enter

    # --- nodes ---
    def add_node(
        self,
        node_type: str,
        position: PositionLike = None,
        parent_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Node:
        """Create a node seeded with the registry defaults for ``node_type``."""
        with self._transaction():
            node = self._create_node(node_type, position, parent_id, data=data)
        logger.debug("Added node %s (%s)", node.id, node_type)
        return node

    def _create_node(
        self,
        node_type: str,
        position: PositionLike,
        parent_id: Optional[str],
        data: Optional[Dict[str, Any]] = None,
        ports: Optional[List[Port]] = None,
    ) -> Node:
        definition = self.registry.get_definition(node_type)
        parent = self.get_node(parent_id) if parent_id is not None else None

        config = definition.default_config()
        if data:
            config = parse_config(node_type, {**config.model_dump(), **data})
        node = Node(
            id=generate_id(node_type),
            type=node_type,
            category=definition.category,
            name=definition.display_name,
            position=_as_position(position),
            data=config,
            ports=[p.model_copy(deep=True) for p in ports] if ports is not None else definition.default_ports(),
            parent_id=parent_id,
        )

        direction = bundles.growable_direction(node)
        if direction is not None:
            node.ports = bundles.ensure_empty_slot(node.ports, node.data.slot_kind, direction)
        generated = generate_ports(node, parent)
        if generated is not None:
            node.ports = generated

        self.nodes[node.id] = node
        if parent is None:
            self.root_node_ids.append(node.id)
        else:
            parent.child_ids.append(node.id)

        if definition.can_enter and definition.internals == "eager":
            self._build_internals(node)
        return node

    def _build_internals(self, node: Node):
        template = template_for(node.type)
        ids: Dict[str, str] = {}
        for spec in template.children:
            child = self._create_node(spec.type, spec.position, node.id, data=spec.data, ports=spec.ports)
            ids[spec.key] = child.id
            if spec.special:
                node.special_ids.append(child.id)
        self._sync_mirrors(node.id)
        for wire in template.wires:
            self._connect(ids[wire.source], wire.source_port, ids[wire.target], wire.target_port)
        logger.debug("Built internals of %s: %d nodes", node.id, len(template.children))

    def ensure_internals(self, node_id: str) -> bool:
        """Synthesize the default sub-graph of an enterable node that has none yet.

        Returns True if a sub-graph was created.
        """
        node = self.get_node(node_id)
        if node.child_ids:
            return False
        if not self.registry.get_definition(node.type).can_enter:
            raise NavigationError(f"Node '{node_id}' ({node.type}) has no internal graph")
        with self._transaction():
            self._build_internals(node)
        return True

    def remove_node(self, node_id: str) -> bool:
        """Remove a node, all of its descendants and every wire touching them.

        Returns False, and changes nothing, if the node is already gone.
        """
        node = self.nodes.get(node_id)
        if node is None:
            return False
        with self._transaction():
            doomed = set(self.descendants(node_id))
            touching = [
                c for c in self.connections.values()
                if c.source_node_id in doomed or c.target_node_id in doomed
            ]
            for conn in touching:
                del self.connections[conn.id]
            for removed_id in doomed:
                del self.nodes[removed_id]
            self.selected_node_ids = [i for i in self.selected_node_ids if i not in doomed]
            self.selected_connection_ids = [i for i in self.selected_connection_ids if i in self.connections]

            if node.parent_id is None:
                self.root_node_ids.remove(node_id)
            else:
                parent = self.nodes[node.parent_id]
                parent.child_ids.remove(node_id)
                if node_id in parent.special_ids:
                    parent.special_ids.remove(node_id)
                    self._sync_mirrors(parent.id)
            for conn in touching:
                self._after_detach(conn)
        logger.debug("Removed node %s with %d descendants", node_id, len(doomed) - 1)
        return True

    def update_node_position(self, node_id: str, position: PositionLike):
        self.get_node(node_id).position = _as_position(position)

    def update_node_data(self, node_id: str, data: Union[Dict[str, Any], NodeConfig], merge: bool = True):
        """Validate and store a new config, then recompute ports that derive from it."""
        node = self.get_node(node_id)
        if isinstance(data, NodeConfig):
            data = data.model_dump()
        if merge:
            data = {**node.data.model_dump(), **data}
        with self._transaction():
            node.data = parse_config(node.type, data)
            self._regenerate(node)
            self._regenerate_children(node)

    def update_node_ports(self, node_id: str, ports: Sequence[Union[Port, Dict[str, Any]]]):
        """Replace a node's port list.

        Wires whose port disappeared are dropped, none are retargeted. When
        the node is a special child, its parent's mirrored ports follow.
        """
        node = self.get_node(node_id)
        ports = [p.model_copy(deep=True) if isinstance(p, Port) else Port.model_validate(p) for p in ports]
        seen: Set[str] = set()
        for port in ports:
            if not is_valid_port_id(port.id):
                raise ConfigError(f"Invalid port id '{port.id}'")
            if port.id in seen:
                raise ConfigError(f"Duplicate port id '{port.id}' on node '{node_id}'")
            seen.add(port.id)
        with self._transaction():
            direction = bundles.growable_direction(node)
            if direction is not None:
                ports = bundles.ensure_empty_slot(ports, node.data.slot_kind, direction)
            if node.special_ids:
                ports = mirror_ports(node.model_copy(update={"ports": ports}), self.nodes, self.connections.values())
            self._set_ports(node, ports)

    # --- connections ---
    def add_connection(
        self,
        source_node_id: str,
        source_port_id: str,
        target_node_id: str,
        target_port_id: str,
    ) -> Connection:
        """Validate and commit a wire; empty-slot endpoints are materialized first."""
        with self._transaction():
            conn = self._connect(source_node_id, source_port_id, target_node_id, target_port_id)
        logger.debug(
            "Connected %s.%s -> %s.%s",
            conn.source_node_id, conn.source_port_id, conn.target_node_id, conn.target_port_id,
        )
        return conn

    def _connect(self, source_node_id: str, source_port_id: str, target_node_id: str, target_port_id: str) -> Connection:
        kind = validate_connection(
            self.nodes, self.connections,
            source_node_id, source_port_id, target_node_id, target_port_id,
            max_depth=self._max_depth(),
        )
        source_port_id = self._materialize(source_node_id, source_port_id, (target_node_id, target_port_id))
        target_port_id = self._materialize(target_node_id, target_port_id, (source_node_id, source_port_id))
        conn = Connection(
            source_node_id=source_node_id,
            source_port_id=source_port_id,
            target_node_id=target_node_id,
            target_port_id=target_port_id,
            kind=kind,
        )
        self._apply_bundle_mapping(conn)
        replaced = self._incoming_audio(target_node_id, target_port_id)
        self.connections[conn.id] = conn
        for old in replaced:
            logger.debug("Replacing connection %s into %s.%s", old.id, target_node_id, target_port_id)
            self._detach(old)
        self._wiring_changed(source_node_id, target_node_id)
        self._add_instrument_row(conn)
        return conn

    def _incoming_audio(self, node_id: str, port_id: str) -> List[Connection]:
        # an audio input takes a single wire
        port = self.nodes[node_id].get_port(port_id)
        if port is None or not port.is_directional or port.direction != "input":
            return []
        return [
            c for c in self.connections.values()
            if c.target_node_id == node_id and c.target_port_id == port_id
        ]

    def remove_connection(self, connection_id: str) -> bool:
        """Delete a wire. Returns False, and changes nothing, if it is already gone."""
        conn = self.connections.get(connection_id)
        if conn is None:
            return False
        with self._transaction():
            self._detach(conn)
        logger.debug("Removed connection %s", connection_id)
        return True

    def _detach(self, conn: Connection):
        del self.connections[conn.id]
        if conn.id in self.selected_connection_ids:
            self.selected_connection_ids.remove(conn.id)
        self._after_detach(conn)

    def _after_detach(self, conn: Connection):
        self._remove_instrument_row(conn)
        for node_id, port_id in ((conn.source_node_id, conn.source_port_id),
                                 (conn.target_node_id, conn.target_port_id)):
            panel_id = self._panel_for_endpoint(node_id, port_id)
            if panel_id is not None:
                self._prune_panel(panel_id)
        self._wiring_changed(conn.source_node_id, conn.target_node_id)

    # --- growable lists ---
    def _panel_for_endpoint(self, node_id: str, port_id: str) -> Optional[str]:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        if bundles.growable_direction(node) is not None:
            return node_id
        resolved = resolve_mirror(node, port_id, self.nodes) if node.get_port(port_id) else None
        if resolved is None:
            return None
        child = self.nodes.get(resolved[0])
        if child is not None and bundles.growable_direction(child) is not None:
            return child.id
        return None

    def _materialize(self, node_id: str, port_id: str, peer: Tuple[str, str]) -> str:
        node = self.nodes[node_id]
        port = node.get_port(port_id)
        panel, slot_id, external = None, port_id, False
        if port.is_empty_slot and bundles.is_growable(node, port):
            panel = node
        else:
            resolved = resolve_mirror(node, port_id, self.nodes)
            if resolved is not None:
                child = self.nodes.get(resolved[0])
                child_port = child.get_port(resolved[1]) if child else None
                if child_port is not None and child_port.is_empty_slot and bundles.is_growable(child, child_port):
                    panel, slot_id, external = child, resolved[1], True
        if panel is None:
            return port_id

        peer_port = self.nodes[peer[0]].get_port(peer[1])
        bundle = peer_port.bundle.model_copy(deep=True) if peer_port is not None and peer_port.bundle else None
        name = bundle.label if bundle else ""
        ports, new_id = bundles.materialize_slot(panel.ports, slot_id, name=name, bundle=bundle)
        self._set_ports(panel, ports)
        logger.debug("Materialized %s on %s from slot %s", new_id, panel.id, slot_id)
        return composite_id(panel.id, new_id) if external else new_id

    def _prune_panel(self, panel_id: str):
        panel = self.nodes.get(panel_id)
        if panel is None:
            return
        direction = bundles.growable_direction(panel)
        connected = {
            port_id
            for c in self.connections.values()
            for node_id, port_id in ((c.source_node_id, c.source_port_id), (c.target_node_id, c.target_port_id))
            if node_id == panel_id
        }
        parent = self.nodes.get(panel.parent_id) if panel.parent_id else None
        if parent is not None:
            prefix = f"{panel_id}:"
            for c in self.connections.values():
                for node_id, port_id in ((c.source_node_id, c.source_port_id), (c.target_node_id, c.target_port_id)):
                    if node_id == parent.id and port_id.startswith(prefix):
                        connected.add(port_id[len(prefix):])
        ports = bundles.prune_ports(panel.ports, direction, connected)
        ports = bundles.ensure_empty_slot(ports, panel.data.slot_kind, direction)
        if [p.id for p in ports] != [p.id for p in panel.ports]:
            self._set_ports(panel, ports)

    # --- port recomputation ---
    def _set_ports(self, node: Node, ports: List[Port]):
        node.ports = ports
        valid = {p.id for p in ports}
        dropped = [
            c for c in self.connections.values()
            if (c.source_node_id == node.id and c.source_port_id not in valid)
            or (c.target_node_id == node.id and c.target_port_id not in valid)
        ]
        for conn in dropped:
            if conn.id in self.connections:
                logger.debug("Dropping connection %s: port removed from %s", conn.id, node.id)
                self._detach(conn)
        self._refresh_bundle_metadata(node.id)
        if node.parent_id is not None:
            parent = self.nodes.get(node.parent_id)
            if parent is not None and node.id in parent.special_ids:
                self._sync_mirrors(parent.id)

    def _sync_mirrors(self, parent_id: str):
        parent = self.nodes[parent_id]
        ports = mirror_ports(parent, self.nodes, self.connections.values())
        if ports != parent.ports:
            self._set_ports(parent, ports)

    def _wiring_changed(self, *node_ids: str):
        # output-panel bundles are described by the wires feeding them
        for node_id in node_ids:
            node = self.nodes.get(node_id)
            if node is None or node.parent_id is None:
                continue
            parent = self.nodes.get(node.parent_id)
            if parent is not None and node_id in parent.special_ids:
                self._sync_mirrors(parent.id)

    def _regenerate(self, node: Node):
        if not has_generator(node.type):
            return
        parent = self.nodes.get(node.parent_id) if node.parent_id else None
        ports = generate_ports(node, parent)
        if ports != node.ports:
            self._set_ports(node, ports)

    def _regenerate_children(self, node: Node):
        for child_id in list(node.child_ids):
            child = self.nodes.get(child_id)
            if child is not None and child.type in PARENT_DRIVEN_TYPES:
                self._regenerate(child)

    # --- bundle metadata ---
    def _apply_bundle_mapping(self, conn: Connection):
        source = self.nodes[conn.source_node_id].get_port(conn.source_port_id)
        if source is None or source.bundle is None:
            conn.is_bundled = False
            conn.bundle_mapping = []
            return
        enabled = {m.key_id: m.enabled for m in conn.bundle_mapping}
        mapping = []
        for index, channel in enumerate(source.bundle.channels):
            key_id = f"{channel.node_id}:{channel.port_id}"
            mapping.append(KeyMapping(
                key_id=key_id,
                source_port=channel.port_id,
                label=channel.label,
                target_channel=index,
                enabled=enabled.get(key_id, True),
            ))
        conn.is_bundled = True
        conn.bundle_mapping = mapping

    def _refresh_bundle_metadata(self, node_id: str):
        for conn in list(self.connections.values()):
            if conn.source_node_id != node_id:
                continue
            self._apply_bundle_mapping(conn)
            target = self.nodes.get(conn.target_node_id)
            if target is None or not isinstance(target.data, InstrumentConfig):
                continue
            rows = []
            changed = False
            for row in target.data.rows:
                if (row.source_node_id, row.source_port_id, row.target_port_id) == (
                    conn.source_node_id, conn.source_port_id, conn.target_port_id
                ):
                    count = max(1, min(128, len(conn.bundle_mapping)))
                    if conn.is_bundled and row.port_count != count:
                        row = row.model_copy(update={"port_count": count})
                        changed = True
                rows.append(row)
            if changed:
                target.data = target.data.model_copy(update={"rows": rows})
                self._regenerate_children(target)

    def _add_instrument_row(self, conn: Connection):
        target = self.nodes[conn.target_node_id]
        if not conn.is_bundled or not isinstance(target.data, InstrumentConfig):
            return
        target_port = target.get_port(conn.target_port_id)
        if target_port is None or not target_port.is_bundle:
            return
        source_port = self.nodes[conn.source_node_id].get_port(conn.source_port_id)
        row = InstrumentRow(
            source_node_id=conn.source_node_id,
            source_port_id=conn.source_port_id,
            target_port_id=conn.target_port_id,
            label=source_port.bundle.label if source_port and source_port.bundle else "",
            port_count=max(1, min(128, len(conn.bundle_mapping))),
        )
        target.data = target.data.model_copy(update={"rows": target.data.rows + [row]})
        self._regenerate_children(target)

    def _remove_instrument_row(self, conn: Connection):
        target = self.nodes.get(conn.target_node_id)
        if target is None or not isinstance(target.data, InstrumentConfig):
            return
        key = (conn.source_node_id, conn.source_port_id, conn.target_port_id)
        rows = [r for r in target.data.rows if (r.source_node_id, r.source_port_id, r.target_port_id) != key]
        if len(rows) != len(target.data.rows):
            target.data = target.data.model_copy(update={"rows": rows})
            self._regenerate_children(target)

    def toggle_bundle_expansion(self, node_id: str, port_id: str) -> Port:
        node = self.get_node(node_id)
        port = node.get_port(port_id)
        if port is None:
            raise NotFoundError("port", port_id, node_id)
        toggled = bundles.toggle_bundle_expansion(port)
        node.ports = [toggled if p.id == port_id else p for p in node.ports]
        return toggled

    # --- container bundles ---
    def _bundle_config(self, node_id: str) -> Tuple[Node, BundleConfig]:
        node = self.get_node(node_id)
        if not isinstance(node.data, BundleConfig):
            raise ConfigError(f"Node '{node_id}' ({node.type}) has no bundle configuration")
        return node, node.data

    def rebundle(self, node_id: str, internal_ids: Iterable[str], bundle_id: str):
        """Move a batch of channel mappings onto another bundle."""
        node, config = self._bundle_config(node_id)
        node.data = bundles.move_to_bundle(config, internal_ids, bundle_id)

    def create_bundle(self, node_id: str, name: str, direction: str = "input") -> str:
        node, config = self._bundle_config(node_id)
        node.data, bundle_id = bundles.create_bundle(config, name, direction)
        return bundle_id

    def rename_bundle(self, node_id: str, bundle_id: str, name: str):
        node, config = self._bundle_config(node_id)
        node.data = bundles.rename_bundle(config, bundle_id, name)

    def remove_bundle(self, node_id: str, bundle_id: str):
        node, config = self._bundle_config(node_id)
        node.data = bundles.remove_bundle(config, bundle_id)

    # --- selection ---
    def select_node(self, node_id: str, additive: bool = False):
        self.get_node(node_id)
        if not additive:
            self.clear_selection()
        if node_id not in self.selected_node_ids:
            self.selected_node_ids.append(node_id)

    def select_nodes(self, node_ids: Iterable[str]):
        node_ids = list(dict.fromkeys(node_ids))
        for node_id in node_ids:
            self.get_node(node_id)
        self.selected_node_ids = node_ids
        self.selected_connection_ids = []

    def deselect_node(self, node_id: str):
        if node_id in self.selected_node_ids:
            self.selected_node_ids.remove(node_id)

    def select_connection(self, connection_id: str, additive: bool = False):
        self.get_connection(connection_id)
        if not additive:
            self.clear_selection()
        if connection_id not in self.selected_connection_ids:
            self.selected_connection_ids.append(connection_id)

    def select_in_rect(self, start: PositionLike, end: PositionLike, parent_id: Optional[str] = None) -> List[str]:
        """Select the nodes of one level whose position lies inside the rectangle."""
        a, b = _as_position(start), _as_position(end)
        left, right = sorted((a.x, b.x))
        top, bottom = sorted((a.y, b.y))
        selected = [
            n.id for n in self.get_children(parent_id)
            if left <= n.position.x <= right and top <= n.position.y <= bottom
        ]
        self.select_nodes(selected)
        return selected

    def clear_selection(self):
        self.selected_node_ids = []
        self.selected_connection_ids = []

    def delete_selected(self):
        with self._transaction():
            for connection_id in list(self.selected_connection_ids):
                conn = self.connections.get(connection_id)
                if conn is not None:
                    self._detach(conn)
            for node_id in list(self.selected_node_ids):
                if node_id in self.nodes:
                    self.remove_node(node_id)
            self.clear_selection()

    def clear(self):
        self.nodes = {}
        self.connections = {}
        self.root_node_ids = []
        self.clear_selection()

    # --- persistence ---
    def save(self, path: Union[str, Path], name: str = "Untitled"):
        """Write the graph as a versioned JSON document."""
        from .serialization import export_document, write_document
        write_document(export_document(self, name), path)

    @classmethod
    def load(cls, path: Union[str, Path], registry: Optional[NodeRegistry] = None) -> "Graph":
        from .serialization import import_document, read_document
        return import_document(read_document(path), registry=registry)
