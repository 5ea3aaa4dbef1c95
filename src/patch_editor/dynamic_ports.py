"""Port lists computed from configuration.

Every generator here is a pure function of a node's config (and, for nodes
that render their parent's state, the parent's config). The graph calls
:func:`generate_ports` whenever that input changes and replaces the node's
port list with the result, so generated lists are never edited in place.
"""
import functools
import logging
import tomllib
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .errors import ConfigError
from .models import Node, Port, PortKind
from .node_config import CanvasPortConfig, InstrumentConfig, InstrumentRow, MidiConfig
from .notes import calculate_midi_note, midi_to_note

logger = logging.getLogger(__name__)

PRESETS_PATH = Path(__file__).parent / "presets"

# (row label, [(port suffix, key label), ...]) in the order they are wired
KEYBOARD_ROWS: List[Tuple[str, List[Tuple[str, str]]]] = [
    ("Row 1", [(c, c.upper()) for c in "qwertyuiop"]),
    ("Row 2", [(c, c.upper()) for c in "asdfghjkl"]),
    ("Row 3", [(c, c.upper()) for c in "zxcvbnm"] + [("comma", ","), ("period", "."), ("slash", "/")]),
    ("Pedal", [("space", "Space")]),
]


# --- MIDI presets ---
class MidiControl(BaseModel):
    id: str
    name: str = ""
    cc: Optional[int] = None
    note: Optional[int] = None


class MidiPreset(BaseModel):
    """Control layout of a MIDI device, loaded from ``presets/<id>.toml``."""
    id: str
    name: str
    manufacturer: str = ""
    note_low: int = Field(0, ge=0, le=127)
    note_high: int = Field(127, ge=0, le=127)
    pads: List[MidiControl] = Field(default_factory=list)
    knobs: List[MidiControl] = Field(default_factory=list)
    faders: List[MidiControl] = Field(default_factory=list)
    pitch_bend: bool = True
    mod_wheel: bool = True
    mod_wheel_cc: int = 1


@functools.lru_cache(maxsize=None)
def load_presets(base_path: Path = PRESETS_PATH) -> Dict[str, MidiPreset]:
    presets = {}
    for preset_file in sorted(base_path.glob("*.toml")):
        with preset_file.open("rb") as f:
            preset = MidiPreset(**tomllib.load(f))
        presets[preset.id] = preset
        logger.debug("Loaded MIDI preset: %s", preset.id)
    return presets


def get_preset(preset_id: str) -> MidiPreset:
    try:
        return load_presets()[preset_id]
    except KeyError:
        raise ConfigError(f"Unknown MIDI preset '{preset_id}'") from None


# --- generators ---
def keyboard_key_ports() -> List[Port]:
    """One control output per QWERTY key."""
    return [
        Port(id=f"key-{suffix}", name=label, kind="control", direction="output")
        for _, keys in KEYBOARD_ROWS
        for suffix, label in keys
    ]


def note_range_ports(low: int, high: int, direction: str = "output", kind: PortKind = "control") -> List[Port]:
    """N keys between two MIDI notes, inclusive, named after the note."""
    if low > high:
        low, high = high, low
    return [
        Port(id=f"key-{note}", name=midi_to_note(note), kind=kind, direction=direction)
        for note in range(low, high + 1)
    ]


def midi_device_ports(preset: MidiPreset) -> List[Port]:
    """One control output per control the device exposes."""
    ports = note_range_ports(preset.note_low, preset.note_high)
    for index, pad in enumerate(preset.pads, start=1):
        ports.append(Port(id=pad.id, name=pad.name or f"Pad {index}", direction="output"))
    for index, knob in enumerate(preset.knobs, start=1):
        ports.append(Port(id=knob.id, name=knob.name or f"Knob {index}", direction="output"))
    for index, fader in enumerate(preset.faders, start=1):
        ports.append(Port(id=fader.id, name=fader.name or f"Fader {index}", direction="output"))
    if preset.pitch_bend:
        ports.append(Port(id="pitch-bend", name="Pitch", direction="output"))
    if preset.mod_wheel:
        ports.append(Port(id="mod-wheel", name="Mod", direction="output"))
    return ports


def row_key_ports(row: InstrumentRow) -> List[Port]:
    ports = []
    for key_index in range(row.port_count):
        note = calculate_midi_note(row.base_note, row.base_octave, row.base_offset, row.spread, key_index)
        ports.append(Port(
            id=f"{row.row_id}-key-{key_index + 1}",
            name=midi_to_note(note),
            kind="control",
            direction="input",
        ))
    return ports


def instrument_row_ports(rows: List[InstrumentRow]) -> List[Port]:
    """One note input per key of every incoming bundle row."""
    return [port for row in rows for port in row_key_ports(row)]


def canvas_port(config: CanvasPortConfig, direction: str) -> Port:
    port_id = "out" if direction == "output" else "in"
    return Port(id=port_id, name=config.port_name, kind=config.kind, direction=direction)


# --- dispatch ---
def _instrument_visual(node: Node, parent: Optional[Node]) -> List[Port]:
    if parent is None or not isinstance(parent.data, InstrumentConfig):
        return []
    return instrument_row_ports(parent.data.rows)


def _midi(node: Node, parent: Optional[Node]) -> List[Port]:
    preset_id = node.data.preset_id if isinstance(node.data, MidiConfig) else "generic"
    return midi_device_ports(get_preset(preset_id))


PORT_GENERATORS: Dict[str, Callable[[Node, Optional[Node]], List[Port]]] = {
    "keyboard-visual": lambda node, parent: keyboard_key_ports(),
    "midi": _midi,
    "instrument-visual": _instrument_visual,
    "canvas-input": lambda node, parent: [canvas_port(node.data, "output")],
    "canvas-output": lambda node, parent: [canvas_port(node.data, "input")],
}

# node types whose generated ports read the parent's config
PARENT_DRIVEN_TYPES = frozenset({"instrument-visual"})


def has_generator(node_type: str) -> bool:
    return node_type in PORT_GENERATORS


def generate_ports(node: Node, parent: Optional[Node] = None) -> Optional[List[Port]]:
    """Compute the port list of ``node``, or ``None`` if its ports are not generated."""
    generator = PORT_GENERATORS.get(node.type)
    if generator is None:
        return None
    return generator(node, parent)
