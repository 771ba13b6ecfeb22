"""Pitch-class arithmetic shared by every stage."""

import numpy as np

from .constants import PITCH_NAMES


def to_pc(n: int) -> int:
    """Normalize any integer (including negatives) to a pitch class 0-11."""
    return ((int(n) % 12) + 12) % 12


def interval(from_pc: int, to_pc_: int) -> int:
    """Ascending interval in semitones from one pitch class to another."""
    return to_pc(to_pc_ - from_pc)


def freq_to_midi(freq: float) -> float:
    """Convert frequency (Hz) to fractional MIDI pitch."""
    if freq <= 0:
        return 0.0
    return float(69 + 12 * np.log2(freq / 440.0))


def midi_to_freq(midi: float) -> float:
    """Convert MIDI pitch to frequency (Hz)."""
    return 440.0 * (2 ** ((midi - 69) / 12.0))


def freq_to_pc(freq: float) -> int:
    """Nearest pitch class for a frequency."""
    return to_pc(int(round(freq_to_midi(freq))))


def pc_name(pc: int) -> str:
    """Sharp name of a pitch class (e.g. 9 -> 'A')."""
    return PITCH_NAMES[to_pc(pc)]


def circle_of_fifths_distance(a: int, b: int) -> int:
    """Steps around the circle of fifths between two pitch classes (0-6)."""
    # 7 is its own inverse mod 12, so multiplying by 7 maps semitones to fifths
    steps = to_pc(7 * interval(a, b))
    return min(steps, 12 - steps)


def chromatic_distance(a: int, b: int) -> int:
    """Shortest distance in semitones between two pitch classes (0-6)."""
    d = interval(a, b)
    return min(d, 12 - d)
