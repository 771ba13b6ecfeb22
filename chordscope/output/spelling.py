"""Enharmonic display spelling.

Structured chords always carry pitch classes; names are chosen only here,
at the boundary. Keys whose tonic is F, Bb, Eb, Ab, Db, Gb or B spell
with flats, all others with sharps.
"""

from ..core import PITCH_NAMES, PITCH_NAMES_FLAT, ChordEvent, Key, to_pc

FLAT_KEY_ROOTS = frozenset({5, 10, 3, 8, 1, 6, 11})


def uses_flats(key: Key) -> bool:
    return key.root in FLAT_KEY_ROOTS


def note_name(pc: int, key: Key) -> str:
    """Name of a pitch class as spelled in ``key``."""
    names = PITCH_NAMES_FLAT if uses_flats(key) else PITCH_NAMES
    return names[to_pc(pc)]


def key_name(key: Key) -> str:
    """Key name spelled in its own accidentals (e.g. 'Bb major')."""
    return f"{note_name(key.root, key)} {key.mode}"


def chord_label(event: ChordEvent, key: Key) -> str:
    """Chord symbol spelled for ``key`` (e.g. 'Bb/D' instead of 'A#/D')."""
    label = note_name(event.root, key) + event.quality.suffix
    if event.is_slash:
        label += "/" + note_name(event.bass_pitch_class, key)
    return label
