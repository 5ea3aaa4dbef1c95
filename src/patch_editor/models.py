import uuid
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, SerializeAsAny, ValidationInfo, field_validator

from .node_config import NodeConfig, parse_config

PortKind = Literal["audio", "control", "universal"]
Direction = Literal["input", "output"]

# audio must flow output -> input; the other kinds accept either pairing
DIRECTIONAL_KINDS = frozenset({"audio"})

EMPTY_SLOT_PREFIX = "empty-"


def generate_id(prefix: str) -> str:
    """Generate a unique id such as ``keyboard-1a2b3c4d``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class Position(BaseModel):
    """2-D position, relative to the parent's coordinate space."""
    x: float = 0.0
    y: float = 0.0


class Viewport(BaseModel):
    pan: Position = Field(default_factory=Position)
    zoom: float = 1.0


class BundleChannel(BaseModel):
    """One logical signal carried inside a bundle port."""
    node_id: str
    port_id: str
    label: str = ""


class BundleInfo(BaseModel):
    """Aggregate description of the channels behind a bundle port."""
    bundle_id: str
    label: str
    source_node_id: str
    source_node_type: str
    source_port_id: str
    channels: List[BundleChannel] = Field(default_factory=list)
    expanded: bool = False

    @property
    def size(self) -> int:
        return len(self.channels)


class Port(BaseModel):
    """A typed input or output of a node."""
    id: str
    name: str = ""
    kind: PortKind = "control"
    direction: Direction = "input"
    is_bundle: bool = False
    bundle: Optional[BundleInfo] = None
    position: Optional[Position] = None  # normalized 0..1 within the node bounds
    hidden: bool = False  # never mirrored onto a parent
    hide_external_label: bool = False
    removable: bool = False  # materialized from an empty slot, may be pruned
    mirror_of: Optional[str] = None  # "childId" or "childId:portId"

    @property
    def is_empty_slot(self) -> bool:
        return self.id.startswith(EMPTY_SLOT_PREFIX)

    @property
    def is_directional(self) -> bool:
        return self.kind in DIRECTIONAL_KINDS


class KeyMapping(BaseModel):
    """Maps one channel of a bundled connection onto a target channel."""
    key_id: str
    source_port: str
    label: str = ""
    target_channel: int = 0
    enabled: bool = True


class Connection(BaseModel):
    """A wire between two ports."""
    id: str = Field(default_factory=lambda: generate_id("conn"))
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    kind: PortKind
    is_bundled: bool = False
    bundle_mapping: List[KeyMapping] = Field(default_factory=list)

    @property
    def endpoints(self) -> Tuple[str, str, str, str]:
        return (self.source_node_id, self.source_port_id, self.target_node_id, self.target_port_id)

    def touches(self, node_id: str, port_id: Optional[str] = None) -> bool:
        if port_id is None:
            return node_id in (self.source_node_id, self.target_node_id)
        return (self.source_node_id, self.source_port_id) == (node_id, port_id) or (
            self.target_node_id,
            self.target_port_id,
        ) == (node_id, port_id)


class Node(BaseModel):
    """A node instance stored in the flat node map of a graph."""
    id: str = Field(default_factory=lambda: generate_id("node"))
    type: str
    category: str = ""
    name: str = ""
    position: Position = Field(default_factory=Position)
    data: SerializeAsAny[NodeConfig] = Field(default_factory=NodeConfig)
    ports: List[Port] = Field(default_factory=list)
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)
    special_ids: List[str] = Field(default_factory=list)
    internal_viewport: Optional[Viewport] = None

    @field_validator("data", mode="before")
    @classmethod
    def _parse_data(cls, value: Any, info: ValidationInfo) -> NodeConfig:
        return parse_config(info.data.get("type", ""), value)

    def get_port(self, port_id: str) -> Optional[Port]:
        for port in self.ports:
            if port.id == port_id:
                return port
        return None

    @property
    def inputs(self) -> List[Port]:
        return [p for p in self.ports if p.direction == "input"]

    @property
    def outputs(self) -> List[Port]:
        return [p for p in self.ports if p.direction == "output"]
