import pytest

from patch_editor.core import Graph
from patch_editor.layout import canvas_port_positions, find_port_at, port_positions
from patch_editor.models import Position


def test_single_ports_are_centred(graph: Graph) -> None:
    amp = graph.add_node("amplifier")
    positions = port_positions(amp, graph.registry.get_definition("amplifier"))
    assert positions["audio-in"] == Position(x=0.0, y=0.5)
    assert positions["audio-out"] == Position(x=1.0, y=0.5)


def test_ports_spread_over_the_edge(graph: Graph) -> None:
    mixer = graph.add_node("mixer")
    positions = port_positions(mixer, graph.registry.get_definition("mixer"))
    assert positions["in-1"].y == pytest.approx(0.2)
    assert positions["in-2"].y == pytest.approx(0.8)
    assert positions["out-1"] == Position(x=1.0, y=0.5)


def test_fixed_positions_are_kept(graph: Graph) -> None:
    mixer = graph.add_node("mixer")
    ports = [p.model_copy(deep=True) for p in mixer.ports]
    ports[0].position = Position(x=0.5, y=0.0)
    graph.update_node_ports(mixer.id, ports)
    positions = port_positions(mixer, graph.registry.get_definition("mixer"))
    assert positions["in-1"] == Position(x=0.5, y=0.0)
    # in-2 is now the only dynamic input
    assert positions["in-2"].y == pytest.approx(0.5)


def test_horizontal_layout(graph: Graph) -> None:
    keyboard = graph.add_node("keyboard")
    keys = graph.nodes_by_type("keyboard-visual")[0]
    positions = port_positions(keys, graph.registry.get_definition("keyboard-visual"))
    assert positions["key-q"].x == pytest.approx(0.1)
    assert positions["key-q"].y == 1.0
    assert positions["key-space"].x == pytest.approx(0.9)
    assert keys.parent_id == keyboard.id


def test_canvas_positions_and_hit_testing(graph: Graph) -> None:
    amp = graph.add_node("amplifier", (100, 50))
    definition = graph.registry.get_definition("amplifier")
    positions = canvas_port_positions(amp, definition)
    assert positions["audio-in"] == Position(x=100, y=50 + 0.5 * definition.height)

    hit = Position(x=103, y=50 + 0.5 * definition.height + 4)
    assert find_port_at(amp, definition, hit) == "audio-in"
    assert find_port_at(amp, definition, Position(x=0, y=0)) is None
