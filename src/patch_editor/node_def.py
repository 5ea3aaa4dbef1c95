import functools
import logging
import tomllib
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, SerializeAsAny

from .errors import ConfigError, UnknownTypeError
from .models import Port
from .node_config import NodeConfig, parse_config

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).parent / "catalog"


# --- Node Definition ---
class NodeDefinition(BaseModel):
    """
    Catalogue entry parsed from a node.toml file: the defaults a node of this
    type is seeded with, and how the editor may treat it.
    """
    type: str
    version: str = "0.0.1"
    category: str
    display_name: str = ""
    description: str = ""
    order: int = 100  # order inside the category menu
    can_enter: bool = False  # has, or can lazily acquire, an internal sub-graph
    menu: bool = True  # false for nodes that only live inside other nodes
    internals: Literal["eager", "lazy"] = "lazy"
    port_layout: Literal["vertical", "horizontal"] = "vertical"
    width: float = 200.0
    height: float = 100.0
    ports: List[Port] = Field(default_factory=list)
    config: SerializeAsAny[NodeConfig] = Field(default_factory=NodeConfig)

    def default_ports(self) -> List[Port]:
        return [port.model_copy(deep=True) for port in self.ports]

    def default_config(self) -> NodeConfig:
        return self.config.model_copy(deep=True)


# --- Category Definition ---
class CategoryDefinition(BaseModel):
    category_id: str
    display_name: str = ""
    order: int = 100
    default_open: bool = True


def is_compatible(source: Port, target: Port) -> bool:
    """Whether a wire may run from ``source`` to ``target``.

    Kinds must be equal. Directional kinds additionally require an output
    feeding an input; the other kinds accept any pairing.
    """
    if source.kind != target.kind:
        return False
    if source.is_directional:
        return source.direction == "output" and target.direction == "input"
    return True


class NodeRegistry:
    """Static catalogue of node types, keyed by type tag."""

    def __init__(self):
        self._definitions: Dict[str, NodeDefinition] = {}
        self._categories: Dict[str, CategoryDefinition] = {}

    def register_node(self, definition: NodeDefinition):
        if definition.type in self._definitions:
            logger.warning("Node definition '%s' is being overwritten.", definition.type)
        self._definitions[definition.type] = definition

    def register_category(self, category: CategoryDefinition):
        self._categories[category.category_id] = category

    def get_definition(self, node_type: str) -> NodeDefinition:
        try:
            return self._definitions[node_type]
        except KeyError:
            raise UnknownTypeError(node_type) from None

    def has_type(self, node_type: str) -> bool:
        return node_type in self._definitions

    def get_category(self, category_id: str) -> Optional[CategoryDefinition]:
        return self._categories.get(category_id)

    def all_categories(self) -> List[CategoryDefinition]:
        """Registered categories sorted by their order."""
        return sorted(self._categories.values(), key=lambda c: c.order)

    def all_definitions(self, include_hidden: bool = False) -> List[NodeDefinition]:
        definitions = [d for d in self._definitions.values() if include_hidden or d.menu]
        return sorted(definitions, key=lambda d: (d.category, d.order, d.type))

    def menu(self) -> List[Tuple[CategoryDefinition, List[NodeDefinition]]]:
        """Menu-visible node types grouped by category, both in display order."""
        groups = []
        for category in self.all_categories():
            items = [
                d for d in self._definitions.values()
                if d.menu and d.category == category.category_id
            ]
            if items:
                groups.append((category, sorted(items, key=lambda d: (d.order, d.type))))
        return groups

    is_compatible = staticmethod(is_compatible)

    def discover_categories(self, base_path: Path):
        """Load every category.toml below ``base_path``."""
        for category_file in sorted(base_path.glob("**/category.toml")):
            try:
                with category_file.open("rb") as f:
                    config = tomllib.load(f)
                category_id = ".".join(category_file.parent.relative_to(base_path).parts)
                self.register_category(CategoryDefinition(
                    category_id=category_id,
                    display_name=config.get("display_name", category_id.split(".")[-1].capitalize()),
                    order=config.get("order", 100),
                    default_open=config.get("default_open", True),
                ))
                logger.debug("Registered category: %s", category_id)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.error("Error processing category from %s: %s", category_file, e)

    def discover_nodes(self, base_path: Path):
        """Load categories and then every node.toml below ``base_path``.

        The layout is ``base_path/<category>/<node>/node.toml``; a node whose
        category has no category.toml is skipped.
        """
        self.discover_categories(base_path)
        for node_file in sorted(base_path.glob("**/node.toml")):
            try:
                definition = self._load_node_file(base_path, node_file)
            except (OSError, KeyError, tomllib.TOMLDecodeError, ValueError, ConfigError) as e:
                logger.error("Error processing node definition from %s: %s", node_file, e)
                continue
            if definition is None:
                continue
            self.register_node(definition)
            logger.debug("Registered node: %s v%s", definition.type, definition.version)

    def _load_node_file(self, base_path: Path, node_file: Path) -> Optional[NodeDefinition]:
        with node_file.open("rb") as f:
            node_config = tomllib.load(f)

        category_id = ".".join(node_file.parent.parent.relative_to(base_path).parts)
        if category_id not in self._categories:
            logger.warning("Skipping node (category not registered): %s", node_file)
            return None

        node_type = node_config["type"]
        ports = [Port(**p) for p in node_config.get("ports", [])]
        return NodeDefinition(
            type=node_type,
            version=node_config.get("version", "0.0.1"),
            category=category_id,
            display_name=node_config.get("display_name", node_type),
            description=node_config.get("description", ""),
            order=node_config.get("order", 100),
            can_enter=node_config.get("can_enter", False),
            menu=node_config.get("menu", True),
            internals=node_config.get("internals", "lazy"),
            port_layout=node_config.get("port_layout", "vertical"),
            width=node_config.get("width", 200.0),
            height=node_config.get("height", 100.0),
            ports=ports,
            config=parse_config(node_type, node_config.get("defaults", {})),
        )


def load_registry(extra_paths: Iterable[Path] = ()) -> NodeRegistry:
    """Build a registry from the bundled catalogue plus any extra catalogue roots."""
    registry = NodeRegistry()
    registry.discover_nodes(CATALOG_PATH)
    for path in extra_paths:
        path = Path(path)
        if not path.is_dir():
            logger.warning("Catalogue path does not exist: %s", path)
            continue
        registry.discover_nodes(path)
    return registry


@functools.lru_cache(maxsize=1)
def default_registry() -> NodeRegistry:
    """Shared registry of the bundled catalogue."""
    return load_registry()
