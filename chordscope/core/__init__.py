"""Core types and constants for chordscope."""

from .constants import (
    PITCH_NAMES,
    PITCH_NAMES_FLAT,
    MAJOR_SCALE,
    MINOR_SCALE,
    DEFAULT_SR,
    DEFAULT_TEMPO,
)
from .pitch import (
    to_pc,
    interval,
    freq_to_midi,
    midi_to_freq,
    freq_to_pc,
    pc_name,
    circle_of_fifths_distance,
    chromatic_distance,
)
from .key import Key
from .chord import ChordQuality, Provenance, ChordCandidate, ChordEvent
from .timeline import Timeline

__all__ = [
    "PITCH_NAMES",
    "PITCH_NAMES_FLAT",
    "MAJOR_SCALE",
    "MINOR_SCALE",
    "DEFAULT_SR",
    "DEFAULT_TEMPO",
    "to_pc",
    "interval",
    "freq_to_midi",
    "midi_to_freq",
    "freq_to_pc",
    "pc_name",
    "circle_of_fifths_distance",
    "chromatic_distance",
    "Key",
    "ChordQuality",
    "Provenance",
    "ChordCandidate",
    "ChordEvent",
    "Timeline",
]
