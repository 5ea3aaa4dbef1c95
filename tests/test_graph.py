import pytest

from patch_editor.core import Graph
from patch_editor.errors import ConfigError, CycleError, IncompatiblePortsError, NavigationError, NotFoundError, UnknownTypeError
from patch_editor.node_config import AmplifierConfig, InstrumentConfig


def test_add_node_seeds_registry_defaults(graph: Graph) -> None:
    node = graph.add_node("amplifier", (10, 20))
    assert node.id.startswith("amplifier-")
    assert node.category == "effects"
    assert node.name == "Amplifier"
    assert [p.id for p in node.ports] == ["audio-in", "audio-out"]
    assert isinstance(node.data, AmplifierConfig)
    assert node.data.gain == 1.0
    assert node.position.x == 10 and node.position.y == 20
    assert graph.root_node_ids == [node.id]


def test_add_node_unknown_type_leaves_graph_untouched(graph: Graph) -> None:
    with pytest.raises(UnknownTypeError):
        graph.add_node("theremin")
    assert graph.nodes == {}
    assert graph.root_node_ids == []


def test_add_node_with_missing_parent(graph: Graph) -> None:
    with pytest.raises(NotFoundError):
        graph.add_node("mixer", parent_id="mixer-00000000")
    assert graph.nodes == {}


def test_add_node_with_invalid_data(graph: Graph) -> None:
    with pytest.raises(ConfigError):
        graph.add_node("amplifier", data={"gain": -2})
    assert graph.nodes == {}


def test_child_is_appended_to_parent(graph: Graph) -> None:
    outer = graph.add_node("mixer")
    inner = graph.add_node("mixer", parent_id=outer.id)
    assert outer.child_ids == [inner.id]
    assert inner.parent_id == outer.id
    assert graph.root_node_ids == [outer.id]
    assert [n.id for n in graph.get_children(outer.id)] == [inner.id]


def test_remove_parent_cascades_to_children_and_wires(graph: Graph) -> None:
    k = graph.add_node("mixer")
    m = graph.add_node("mixer", parent_id=k.id)
    conn = graph.add_connection(k.id, "out-1", m.id, "in-1")
    assert graph.connections[conn.id].kind == "audio"

    graph.remove_node(k.id)
    assert graph.nodes == {}
    assert graph.connections == {}
    assert graph.root_node_ids == []


def test_remove_node_drops_wires_from_outside(graph: Graph) -> None:
    outer = graph.add_node("mixer")
    inner = graph.add_node("mixer", parent_id=outer.id)
    deepest = graph.add_node("mixer", parent_id=inner.id)
    speaker = graph.add_node("speaker")
    graph.add_connection(deepest.id, "out-1", speaker.id, "audio-in")

    graph.remove_node(outer.id)
    assert set(graph.nodes) == {speaker.id}
    assert graph.connections == {}


def test_remove_child_updates_parent(graph: Graph) -> None:
    outer = graph.add_node("mixer")
    inner = graph.add_node("mixer", parent_id=outer.id)
    graph.remove_node(inner.id)
    assert outer.child_ids == []
    assert outer.id in graph.nodes


def test_remove_node_is_idempotent(graph: Graph) -> None:
    mixer = graph.add_node("mixer")
    assert graph.remove_node(mixer.id) is True
    assert graph.remove_node(mixer.id) is False
    assert graph.remove_node("mixer-00000000") is False


def test_remove_connection_is_idempotent(graph: Graph) -> None:
    a = graph.add_node("amplifier")
    b = graph.add_node("amplifier")
    conn = graph.add_connection(a.id, "audio-out", b.id, "audio-in")
    assert graph.remove_connection(conn.id) is True
    assert graph.remove_connection(conn.id) is False
    assert graph.connections == {}


def test_update_node_position(graph: Graph) -> None:
    node = graph.add_node("speaker")
    graph.update_node_position(node.id, {"x": 5, "y": -3})
    assert (node.position.x, node.position.y) == (5, -3)


def test_update_node_data_merges(graph: Graph) -> None:
    node = graph.add_node("effect")
    graph.update_node_data(node.id, {"effect_type": "delay"})
    assert node.data.effect_type == "delay"
    assert node.data.params == {"mix": 0.3, "decay": 2.0}


def test_update_node_data_rejects_invalid_payload(graph: Graph) -> None:
    node = graph.add_node("amplifier")
    with pytest.raises(ConfigError):
        graph.update_node_data(node.id, {"gain": -1})
    with pytest.raises(ConfigError):
        graph.update_node_data(node.id, {"volume": 0.5})
    assert graph.nodes[node.id].data.gain == 1.0


def test_update_node_data_missing_node(graph: Graph) -> None:
    with pytest.raises(NotFoundError):
        graph.update_node_data("amplifier-00000000", {"gain": 2})


def test_keyboard_is_built_with_its_internals(graph: Graph) -> None:
    keyboard = graph.add_node("keyboard")
    assert len(keyboard.child_ids) == 3
    assert len(keyboard.special_ids) == 2
    types = [graph.nodes[i].type for i in keyboard.child_ids]
    assert types == ["input-panel", "keyboard-visual", "output-panel"]
    # one wire per key
    assert len(graph.connections) == 30

    out_panel = keyboard.special_ids[1]
    rows = [p for p in keyboard.outputs if not p.is_empty_slot]
    assert [p.id for p in rows] == [f"{out_panel}:port-{i}" for i in range(1, 5)]
    assert [p.name for p in rows] == ["Row 1", "Row 2", "Row 3", "Pedal"]
    assert [p.bundle.size for p in rows] == [10, 9, 10, 1]
    assert rows[0].bundle.label == "Keyboard Row 1"
    assert rows[0].bundle.channels[0].label == "Q"


def test_bundled_connection_adds_instrument_row(graph: Graph) -> None:
    keyboard = graph.add_node("keyboard")
    piano = graph.add_node("piano")
    row_port = f"{keyboard.special_ids[1]}:port-1"

    conn = graph.add_connection(keyboard.id, row_port, piano.id, "bundle-in")
    assert conn.is_bundled
    assert len(conn.bundle_mapping) == 10
    assert conn.bundle_mapping[0].label == "Q"
    assert isinstance(piano.data, InstrumentConfig)
    assert len(piano.data.rows) == 1
    assert piano.data.rows[0].port_count == 10
    assert piano.data.rows[0].label == "Keyboard Row 1"

    graph.remove_connection(conn.id)
    assert graph.nodes[piano.id].data.rows == []


def test_instrument_row_drives_visual_ports(graph: Graph) -> None:
    keyboard = graph.add_node("keyboard")
    piano = graph.add_node("piano")
    assert graph.ensure_internals(piano.id) is True
    visual = graph.nodes_by_type("instrument-visual")[0]
    assert visual.ports == []

    graph.add_connection(keyboard.id, f"{keyboard.special_ids[1]}:port-2", piano.id, "bundle-in")
    visual = graph.nodes[visual.id]
    assert len(visual.ports) == 9
    assert visual.ports[0].name == "C4"
    assert visual.ports[1].name == "C#4"


def test_ensure_internals_is_lazy_and_once(graph: Graph) -> None:
    piano = graph.add_node("piano")
    assert piano.child_ids == []
    assert graph.ensure_internals(piano.id) is True
    assert len(piano.child_ids) == 3
    assert graph.ensure_internals(piano.id) is False
    assert len(piano.child_ids) == 3


def test_ensure_internals_on_plain_node(graph: Graph) -> None:
    node = graph.add_node("speaker")
    with pytest.raises(NavigationError):
        graph.ensure_internals(node.id)


def test_rejected_connection_changes_nothing(graph: Graph) -> None:
    keyboard = graph.add_node("keyboard")
    in_panel = graph.nodes[keyboard.special_ids[0]]
    slot = next(p for p in keyboard.inputs if p.is_empty_slot)
    before_ports = [p.id for p in in_panel.ports]
    before_conns = set(graph.connections)

    mic = graph.add_node("microphone")
    with pytest.raises(IncompatiblePortsError):
        graph.add_connection(mic.id, "audio-out", keyboard.id, slot.id)

    assert [p.id for p in graph.nodes[in_panel.id].ports] == before_ports
    assert set(graph.connections) == before_conns


def test_select_and_delete_selected(graph: Graph) -> None:
    a = graph.add_node("amplifier")
    b = graph.add_node("amplifier")
    c = graph.add_node("speaker")
    conn = graph.add_connection(a.id, "audio-out", b.id, "audio-in")
    graph.add_connection(b.id, "audio-out", c.id, "audio-in")

    graph.select_node(a.id)
    graph.select_node(b.id, additive=True)
    assert graph.selected_node_ids == [a.id, b.id]
    graph.select_connection(conn.id, additive=True)

    graph.delete_selected()
    assert set(graph.nodes) == {c.id}
    assert graph.connections == {}
    assert graph.selected_node_ids == []
    assert graph.selected_connection_ids == []


def test_select_replaces_previous_selection(graph: Graph) -> None:
    a = graph.add_node("amplifier")
    b = graph.add_node("amplifier")
    graph.select_node(a.id)
    graph.select_node(b.id)
    assert graph.selected_node_ids == [b.id]
    graph.deselect_node(b.id)
    assert graph.selected_node_ids == []


def test_select_in_rect_only_looks_at_one_level(graph: Graph) -> None:
    a = graph.add_node("mixer", (10, 10))
    b = graph.add_node("mixer", (50, 50))
    graph.add_node("mixer", (500, 500))
    graph.add_node("mixer", (20, 20), parent_id=a.id)

    selected = graph.select_in_rect((100, 100), (0, 0))
    assert selected == [a.id, b.id]
    assert graph.selected_node_ids == [a.id, b.id]


def test_removed_node_leaves_selection(graph: Graph) -> None:
    a = graph.add_node("amplifier")
    graph.select_node(a.id)
    graph.remove_node(a.id)
    assert graph.selected_node_ids == []


def test_graphs_are_independent() -> None:
    first = Graph()
    second = Graph()
    first.add_node("speaker")
    assert second.nodes == {}


def test_rejected_connection_keeps_node_handles_live(graph: Graph) -> None:
    a = graph.add_node("amplifier")
    with pytest.raises(CycleError):
        graph.add_connection(a.id, "audio-out", a.id, "audio-in")
    assert graph.nodes[a.id] is a
    assert graph.get_children(None) == [a]

    graph.update_node_position(a.id, (5, 5))
    assert a.position.x == 5 and a.position.y == 5


def test_failed_update_restores_the_same_objects(graph: Graph) -> None:
    midi = graph.add_node("midi")
    ports = [p.id for p in midi.ports]
    with pytest.raises(ConfigError):
        graph.update_node_data(midi.id, {"preset_id": "theremin"})
    assert graph.nodes[midi.id] is midi
    assert midi.data.preset_id == "generic"
    assert [p.id for p in midi.ports] == ports


def test_audio_input_takes_a_single_wire(graph: Graph) -> None:
    first_mic = graph.add_node("microphone")
    second_mic = graph.add_node("microphone")
    amp = graph.add_node("amplifier")
    first = graph.add_connection(first_mic.id, "audio-out", amp.id, "audio-in")
    second = graph.add_connection(second_mic.id, "audio-out", amp.id, "audio-in")

    assert first.id not in graph.connections
    assert graph.connections_for_port(amp.id, "audio-in") == [second]


def test_control_input_keeps_several_wires(graph: Graph) -> None:
    midi = graph.add_node("midi")
    piano = graph.add_node("piano")
    graph.add_connection(midi.id, "key-60", piano.id, "control-in")
    graph.add_connection(midi.id, "key-61", piano.id, "control-in")
    assert len(graph.connections_for_port(piano.id, "control-in")) == 2


def test_replacing_wire_that_forms_a_cycle_changes_nothing(graph: Graph) -> None:
    mic = graph.add_node("microphone")
    a = graph.add_node("amplifier")
    b = graph.add_node("amplifier")
    feed = graph.add_connection(mic.id, "audio-out", a.id, "audio-in")
    graph.add_connection(a.id, "audio-out", b.id, "audio-in")

    with pytest.raises(CycleError):
        graph.add_connection(b.id, "audio-out", a.id, "audio-in")
    assert graph.connections[feed.id] is feed
    assert graph.connections_for_port(a.id, "audio-in") == [feed]
    assert len(graph.connections) == 2
