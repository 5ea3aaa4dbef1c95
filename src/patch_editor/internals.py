"""Default internal sub-graphs.

When an enterable node first needs its inside (at creation for ``eager``
types, on first entry otherwise) the graph instantiates the template
returned by :func:`template_for`. Templates are plain data; the graph
creates the nodes and validates the wires like any other.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .dynamic_ports import KEYBOARD_ROWS
from .models import Port, Position
from .node_config import INSTRUMENT_TYPES


class ChildSpec(BaseModel):
    key: str
    type: str
    position: Position = Field(default_factory=Position)
    data: Dict[str, Any] = Field(default_factory=dict)
    ports: Optional[List[Port]] = None  # replaces the registry defaults
    special: bool = False


class WireSpec(BaseModel):
    source: str
    source_port: str
    target: str
    target_port: str


class InternalTemplate(BaseModel):
    children: List[ChildSpec] = Field(default_factory=list)
    wires: List[WireSpec] = Field(default_factory=list)


def _panel_port(port_id: str, name: str, kind: str, direction: str, is_bundle: bool = False) -> Port:
    return Port(id=port_id, name=name, kind=kind, direction=direction, is_bundle=is_bundle)


def keyboard_template() -> InternalTemplate:
    """Keys wired row by row into a four-port output panel, plus an empty input panel."""
    row_ports = [
        _panel_port(f"port-{index}", label, "control", "input", is_bundle=True)
        for index, (label, _) in enumerate(KEYBOARD_ROWS, start=1)
    ]
    wires = [
        WireSpec(source="keys", source_port=f"key-{suffix}", target="out", target_port=f"port-{index}")
        for index, (_, keys) in enumerate(KEYBOARD_ROWS, start=1)
        for suffix, _ in keys
    ]
    return InternalTemplate(
        children=[
            ChildSpec(key="in", type="input-panel", position=Position(x=-300, y=0), ports=[], special=True),
            ChildSpec(key="keys", type="keyboard-visual", position=Position(x=0, y=0)),
            ChildSpec(key="out", type="output-panel", position=Position(x=640, y=0), ports=row_ports, special=True),
        ],
        wires=wires,
    )


def container_template() -> InternalTemplate:
    return InternalTemplate(children=[
        ChildSpec(
            key="in",
            type="input-panel",
            position=Position(x=-300, y=0),
            data={"slot_kind": "universal"},
            ports=[
                _panel_port("port-1", "In 1", "universal", "output"),
                _panel_port("port-2", "In 2", "universal", "output"),
            ],
            special=True,
        ),
        ChildSpec(
            key="out",
            type="output-panel",
            position=Position(x=300, y=0),
            data={"slot_kind": "universal"},
            ports=[_panel_port("port-1", "Out 1", "universal", "input")],
            special=True,
        ),
    ])


def instrument_template() -> InternalTemplate:
    return InternalTemplate(children=[
        ChildSpec(
            key="notes",
            type="canvas-input",
            position=Position(x=-300, y=0),
            data={"port_name": "Notes In", "kind": "control"},
            special=True,
        ),
        ChildSpec(key="keys", type="instrument-visual", position=Position(x=0, y=0)),
        ChildSpec(
            key="audio",
            type="canvas-output",
            position=Position(x=400, y=0),
            data={"port_name": "Audio Out", "kind": "audio"},
            special=True,
        ),
    ])


def passthrough_template() -> InternalTemplate:
    """Audio in wired straight to audio out."""
    return InternalTemplate(
        children=[
            ChildSpec(key="in", type="canvas-input", position=Position(x=-200, y=0),
                      data={"port_name": "Input", "kind": "audio"}, special=True),
            ChildSpec(key="out", type="canvas-output", position=Position(x=200, y=0),
                      data={"port_name": "Output", "kind": "audio"}, special=True),
        ],
        wires=[WireSpec(source="in", source_port="out", target="out", target_port="in")],
    )


def template_for(node_type: str) -> InternalTemplate:
    if node_type == "keyboard":
        return keyboard_template()
    if node_type == "container":
        return container_template()
    if node_type in INSTRUMENT_TYPES:
        return instrument_template()
    return passthrough_template()
