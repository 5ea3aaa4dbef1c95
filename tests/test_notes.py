import pytest

from patch_editor.notes import calculate_midi_note, midi_to_note, note_frequency, note_to_midi


@pytest.mark.parametrize(
    "name, expected",
    [
        ("C4", 60),
        ("A4", 69),
        ("c4", 60),
        ("f#3", 54),
        ("Db4", 61),
        ("C-1", 0),
        ("G9", 127),
        # accidentals never move the octave
        ("Cb4", 71),
        ("B#4", 60),
    ],
)
def test_note_to_midi(name: str, expected: int) -> None:
    assert note_to_midi(name) == expected


@pytest.mark.parametrize("name", ["", "H2", "C", "C#x", "4C"])
def test_invalid_names_fall_back_to_middle_c(name: str) -> None:
    assert note_to_midi(name) == 60


def test_note_to_midi_clamps() -> None:
    assert note_to_midi("B9") == 127


def test_midi_to_note() -> None:
    assert midi_to_note(60) == "C4"
    assert midi_to_note(61) == "C#4"
    assert midi_to_note(0) == "C-1"
    assert midi_to_note(200) == "G9"


def test_calculate_midi_note() -> None:
    assert calculate_midi_note(0, 4, 0, 1, 2) == 62
    assert calculate_midi_note(9, 4, -12, 0, 5) == 57
    assert calculate_midi_note(0, 8, 48, 12, 10) == 127


def test_note_frequency() -> None:
    assert note_frequency(69) == 440.0
    assert note_frequency(81) == pytest.approx(880.0)
