import pytest

from patch_editor import dynamic_ports
from patch_editor.core import Graph
from patch_editor.errors import ConfigError
from patch_editor.node_config import CanvasPortConfig, InstrumentRow


def test_keyboard_key_ports() -> None:
    ports = dynamic_ports.keyboard_key_ports()
    assert len(ports) == 30
    assert (ports[0].id, ports[0].name) == ("key-q", "Q")
    assert ports[-1].id == "key-space"
    assert all(p.direction == "output" and p.kind == "control" for p in ports)


def test_generic_midi_preset() -> None:
    preset = dynamic_ports.get_preset("generic")
    ports = dynamic_ports.midi_device_ports(preset)
    # every note plus pitch bend and mod wheel
    assert len(ports) == 130
    assert ports[60].id == "key-60"
    assert ports[60].name == "C4"
    assert [p.id for p in ports[-2:]] == ["pitch-bend", "mod-wheel"]


def test_minilab_preset() -> None:
    preset = dynamic_ports.get_preset("minilab-3")
    assert preset.name == "MiniLab3"
    ports = dynamic_ports.midi_device_ports(preset)
    ids = [p.id for p in ports]
    assert ids[0] == "key-48"
    assert "key-72" in ids and "key-73" not in ids
    assert ids.count("pad-1") == 1
    assert len(ports) == 25 + 8 + 8 + 4 + 2
    names = {p.id: p.name for p in ports}
    assert names["fader-1"] == "Attack"


def test_unknown_preset() -> None:
    with pytest.raises(ConfigError):
        dynamic_ports.get_preset("theremin")


def test_row_key_ports_follow_row_settings() -> None:
    row = InstrumentRow(
        source_node_id="a", source_port_id="b", target_port_id="c",
        port_count=3, base_note=0, base_octave=4, spread=2,
    )
    ports = dynamic_ports.row_key_ports(row)
    assert [p.name for p in ports] == ["C4", "D4", "E4"]
    assert ports[0].id == f"{row.row_id}-key-1"


def test_note_range_ports_accepts_reversed_bounds() -> None:
    ports = dynamic_ports.note_range_ports(62, 60)
    assert [p.id for p in ports] == ["key-60", "key-61", "key-62"]


def test_canvas_port() -> None:
    port = dynamic_ports.canvas_port(CanvasPortConfig(port_name="Notes", kind="control"), "output")
    assert (port.id, port.name, port.kind, port.direction) == ("out", "Notes", "control", "output")


def test_midi_node_ports_follow_preset(graph: Graph) -> None:
    midi = graph.add_node("midi")
    other = graph.add_node("midi")
    assert len(midi.ports) == 130
    low = graph.add_connection(midi.id, "key-30", other.id, "key-30")
    high = graph.add_connection(midi.id, "key-60", other.id, "key-61")

    graph.update_node_data(midi.id, {"preset_id": "minilab-3"})
    assert len(midi.ports) == 47
    # key-30 is outside the MiniLab range
    assert low.id not in graph.connections
    assert high.id in graph.connections


def test_unknown_preset_on_node_rolls_back(graph: Graph) -> None:
    midi = graph.add_node("midi")
    with pytest.raises(ConfigError):
        graph.update_node_data(midi.id, {"preset_id": "theremin"})
    midi = graph.nodes[midi.id]
    assert midi.data.preset_id == "generic"
    assert len(midi.ports) == 130


def test_generate_ports_only_for_generated_types(graph: Graph) -> None:
    amp = graph.add_node("amplifier")
    assert dynamic_ports.generate_ports(amp) is None
    assert not dynamic_ports.has_generator("amplifier")
    assert dynamic_ports.has_generator("keyboard-visual")
