from pathlib import Path

import pytest

from patch_editor.errors import UnknownTypeError
from patch_editor.node_config import INSTRUMENT_TYPES, KeyboardConfig, NodeConfig
from patch_editor.node_def import NodeRegistry, default_registry, load_registry


def write_catalog(root: Path) -> Path:
    category = root / "sources"
    (category / "noise").mkdir(parents=True)
    (category / "category.toml").write_text('display_name = "Sources"\norder = 5\n')
    (category / "noise" / "node.toml").write_text(
        "\n".join([
            'type = "noise"',
            'display_name = "Noise"',
            "order = 1",
            "",
            "[defaults]",
            "color = \"white\"",
            "",
            "[[ports]]",
            'id = "audio-out"',
            'kind = "audio"',
            'direction = "output"',
        ])
    )
    return root


def test_bundled_catalogue_is_complete() -> None:
    registry = default_registry()
    for node_type in (
        "keyboard", "microphone", "midi", "effect", "amplifier", "looper", "container",
        "canvas-input", "canvas-output", "speaker", "recorder", "splitter", "mixer",
        "input-panel", "output-panel", "keyboard-visual", "instrument-visual",
    ) + INSTRUMENT_TYPES:
        assert registry.has_type(node_type), node_type


def test_get_definition() -> None:
    definition = default_registry().get_definition("keyboard")
    assert definition.category == "input"
    assert definition.can_enter
    assert definition.internals == "eager"
    assert isinstance(definition.default_config(), KeyboardConfig)


def test_default_ports_are_copies() -> None:
    definition = default_registry().get_definition("amplifier")
    ports = definition.default_ports()
    ports[0].name = "changed"
    assert definition.ports[0].name == "Audio In"


def test_unknown_type() -> None:
    with pytest.raises(UnknownTypeError) as info:
        default_registry().get_definition("theremin")
    assert info.value.node_type == "theremin"


def test_menu_hides_internal_types() -> None:
    menu = default_registry().menu()
    categories = [category.category_id for category, _ in menu]
    assert categories == ["input", "instruments", "routing", "effects", "output", "utility"]
    types = {d.type for _, definitions in menu for d in definitions}
    assert "input-panel" not in types
    assert "keyboard" in types
    inputs = [d.type for d in menu[0][1]]
    assert inputs == ["keyboard", "microphone", "midi"]


def test_all_definitions_can_include_hidden() -> None:
    registry = default_registry()
    visible = {d.type for d in registry.all_definitions()}
    everything = {d.type for d in registry.all_definitions(include_hidden=True)}
    assert "output-panel" not in visible
    assert "output-panel" in everything


def test_discover_extra_catalogue(tmp_path: Path) -> None:
    registry = load_registry([write_catalog(tmp_path)])
    definition = registry.get_definition("noise")
    assert definition.category == "sources"
    assert definition.config.model_dump() == {"color": "white"}
    assert isinstance(definition.config, NodeConfig)
    assert registry.get_category("sources").order == 5
    assert registry.has_type("keyboard")


def test_node_without_category_is_skipped(tmp_path: Path) -> None:
    node_dir = tmp_path / "loose" / "thing"
    node_dir.mkdir(parents=True)
    (node_dir / "node.toml").write_text('type = "thing"\n')
    registry = NodeRegistry()
    registry.discover_nodes(tmp_path)
    assert not registry.has_type("thing")


def test_broken_definitions_are_skipped(tmp_path: Path) -> None:
    write_catalog(tmp_path)
    broken = tmp_path / "sources" / "broken"
    broken.mkdir()
    (broken / "node.toml").write_text("type = \n")
    untyped = tmp_path / "sources" / "untyped"
    untyped.mkdir()
    (untyped / "node.toml").write_text('display_name = "No type"\n')
    bad_config = tmp_path / "sources" / "loud"
    bad_config.mkdir()
    (bad_config / "node.toml").write_text('type = "amplifier"\n[defaults]\ngain = -5\n')

    registry = NodeRegistry()
    registry.discover_nodes(tmp_path)
    assert [d.type for d in registry.all_definitions()] == ["noise"]


def test_missing_extra_path_is_ignored(tmp_path: Path) -> None:
    registry = load_registry([tmp_path / "missing"])
    assert registry.has_type("keyboard")


def test_registry_exposes_compatibility() -> None:
    amplifier = default_registry().get_definition("amplifier")
    audio_in, audio_out = amplifier.ports
    assert NodeRegistry.is_compatible(audio_out, audio_in)
    assert not NodeRegistry.is_compatible(audio_in, audio_out)
