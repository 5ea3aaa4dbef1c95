"""Note-name and MIDI-number helpers.

Accidentals are applied to the pitch class only, without moving the octave,
so ``Cb4`` is 71 (B4) and ``B#4`` is 60 (C4). Port labels and saved rows
depend on this naming, keep it as is.
"""
import re

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

_NOTE_INDEX = {
    "C": 0, "C#": 1, "Db": 1, "D": 2, "D#": 3, "Eb": 3, "E": 4, "Fb": 4,
    "E#": 5, "F": 5, "F#": 6, "Gb": 6, "G": 7, "G#": 8, "Ab": 8, "A": 9,
    "A#": 10, "Bb": 10, "B": 11, "Cb": 11, "B#": 0,
}
_NOTE_RE = re.compile(r"^([A-Ga-g][#b]?)(-?\d+)$")

DEFAULT_NOTE = 60
MIDI_MIN = 0
MIDI_MAX = 127


def clamp_midi(note: int) -> int:
    return max(MIDI_MIN, min(MIDI_MAX, note))


def note_to_midi(name: str) -> int:
    """Convert a name such as ``C4`` or ``f#3`` to a MIDI note number.

    Unparseable names give middle C.
    """
    match = _NOTE_RE.match(name.strip())
    if not match:
        return DEFAULT_NOTE
    pitch, octave = match.groups()
    pitch = pitch[0].upper() + pitch[1:]
    return clamp_midi((int(octave) + 1) * 12 + _NOTE_INDEX[pitch])


def midi_to_note(note: int) -> str:
    """Name a MIDI note number using sharps, e.g. 61 -> ``C#4``."""
    note = clamp_midi(note)
    return f"{NOTE_NAMES[note % 12]}{note // 12 - 1}"


def calculate_midi_note(base_note: int, base_octave: int, base_offset: int, spread: int, key_index: int) -> int:
    """MIDI note played by key ``key_index`` of an instrument row."""
    root = (base_octave + 1) * 12 + base_note + base_offset
    return clamp_midi(root + spread * key_index)


def note_frequency(note: int) -> float:
    """Equal-tempered frequency in Hz, A4 = 440."""
    return 440.0 * 2 ** ((note - 69) / 12)
