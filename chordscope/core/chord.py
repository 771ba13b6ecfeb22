"""Chord types - structured chord values carried through the pipeline.

Chords keep root, quality and bass as fields from the moment they are
created. The display label is derived from those fields and is never
parsed back.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from .key import Key
from .pitch import to_pc, pc_name


class ChordQuality(Enum):
    """Chord qualities the decoder and decorator can produce."""
    MAJOR = "major"
    MINOR = "minor"
    DIM = "dim"
    AUG = "aug"
    SUS2 = "sus2"
    SUS4 = "sus4"
    DOMINANT7 = "dominant7"
    MAJ7 = "maj7"
    M7 = "m7"
    SIX = "six"
    NINE = "nine"

    @property
    def intervals(self) -> Tuple[int, ...]:
        """Intervals from the root in semitones."""
        return QUALITY_INTERVALS[self]

    @property
    def suffix(self) -> str:
        """Label suffix (e.g. 'm7')."""
        return QUALITY_SUFFIXES[self]

    @property
    def is_minor(self) -> bool:
        """Whether the chord is built on a minor third."""
        return self in (ChordQuality.MINOR, ChordQuality.M7, ChordQuality.DIM)

    @property
    def triad(self) -> "ChordQuality":
        """Underlying major/minor triad quality."""
        return ChordQuality.MINOR if self.is_minor else ChordQuality.MAJOR

    @property
    def is_extended(self) -> bool:
        return self not in (ChordQuality.MAJOR, ChordQuality.MINOR)

    @classmethod
    def triad_for(cls, minor: bool) -> "ChordQuality":
        return cls.MINOR if minor else cls.MAJOR


QUALITY_INTERVALS = {
    ChordQuality.MAJOR: (0, 4, 7),
    ChordQuality.MINOR: (0, 3, 7),
    ChordQuality.DIM: (0, 3, 6),
    ChordQuality.AUG: (0, 4, 8),
    ChordQuality.SUS2: (0, 2, 7),
    ChordQuality.SUS4: (0, 5, 7),
    ChordQuality.DOMINANT7: (0, 4, 7, 10),
    ChordQuality.MAJ7: (0, 4, 7, 11),
    ChordQuality.M7: (0, 3, 7, 10),
    ChordQuality.SIX: (0, 4, 7, 9),
    ChordQuality.NINE: (0, 4, 7, 10, 2),
}

QUALITY_SUFFIXES = {
    ChordQuality.MAJOR: "",
    ChordQuality.MINOR: "m",
    ChordQuality.DIM: "dim",
    ChordQuality.AUG: "aug",
    ChordQuality.SUS2: "sus2",
    ChordQuality.SUS4: "sus4",
    ChordQuality.DOMINANT7: "7",
    ChordQuality.MAJ7: "maj7",
    ChordQuality.M7: "m7",
    ChordQuality.SIX: "6",
    ChordQuality.NINE: "9",
}


class Provenance(Enum):
    """Theory category a chord was accepted under."""
    DIATONIC = "diatonic"
    BORROWED = "borrowed"
    SECONDARY_DOMINANT = "secondaryDominant"
    CHROMATIC = "chromatic"

    @property
    def rank(self) -> int:
        """Higher is more theory-sanctioned."""
        return {
            Provenance.DIATONIC: 3,
            Provenance.BORROWED: 2,
            Provenance.SECONDARY_DOMINANT: 2,
            Provenance.CHROMATIC: 0,
        }[self]


@dataclass
class ChordCandidate:
    """A candidate chord with its score. Scored and discarded per decision."""
    root: int
    quality: ChordQuality
    provenance: Provenance
    score: float = 0.0
    bass_pitch_class: int = -1  # Differs from root for inversions
    priority: float = 0.0


@dataclass(frozen=True)
class ChordEvent:
    """A chord sounding from ``start_time`` until the next event starts."""

    start_time: float  # Seconds
    root: int  # Root pitch class (0-11)
    quality: ChordQuality = ChordQuality.MAJOR
    bass_pitch_class: int = -1  # -1 = root position / unknown
    confidence: float = 0.0  # 0.0 - 1.0
    provenance: Provenance = Provenance.DIATONIC
    frame_index: int = 0  # First analysis frame of the event
    source: str = ""  # Which stage produced the current value

    def __post_init__(self):
        # Decoders hand over numpy scalars; the event stores plain Python values
        object.__setattr__(self, "start_time", float(self.start_time))
        object.__setattr__(self, "root", int(self.root))
        object.__setattr__(self, "bass_pitch_class", int(self.bass_pitch_class))
        object.__setattr__(self, "confidence", float(self.confidence))
        object.__setattr__(self, "frame_index", int(self.frame_index))

    @property
    def is_minor(self) -> bool:
        return self.quality.is_minor

    @property
    def is_slash(self) -> bool:
        return self.bass_pitch_class >= 0 and self.bass_pitch_class != self.root

    @property
    def label(self) -> str:
        """Chord symbol with sharp spelling (e.g., 'Am7/E')."""
        symbol = f"{pc_name(self.root)}{self.quality.suffix}"
        if self.is_slash:
            symbol += f"/{pc_name(self.bass_pitch_class)}"
        return symbol

    @property
    def pitch_classes(self) -> Tuple[int, ...]:
        return tuple(to_pc(self.root + i) for i in self.quality.intervals)

    def same_chord(self, other: Optional["ChordEvent"]) -> bool:
        """Same root, quality and bass (timing and confidence ignored)."""
        return (
            other is not None
            and self.root == other.root
            and self.quality == other.quality
            and self.bass_pitch_class == other.bass_pitch_class
        )

    def evolve(self, **changes) -> "ChordEvent":
        """Return a copy with fields replaced."""
        return replace(self, **changes)

    def get_roman_numeral(self, key: Key) -> str:
        """
        Get roman numeral representation in given key.

        Args:
            key: Key to analyze against

        Returns:
            Roman numeral (e.g., "IV", "ii", "V7"); non-diatonic roots are
            rendered relative to the tonic with a flat (e.g. "bVII")
        """
        step = to_pc(self.root - key.root)

        if key.minor:
            degree_map = {0: "I", 2: "II", 3: "III", 5: "IV", 7: "V", 8: "VI", 10: "VII"}
        else:
            degree_map = {0: "I", 2: "II", 4: "III", 5: "IV", 7: "V", 9: "VI", 11: "VII"}

        if step in degree_map:
            numeral = degree_map[step]
        else:
            # Chromatic root: name it as a flattened degree above
            upper = degree_map.get(to_pc(step + 1))
            if upper and upper != "I":
                numeral = f"b{upper}"
            else:
                numeral = f"#{degree_map.get(to_pc(step - 1), '?')}"

        if self.is_minor:
            numeral = numeral.lower()

        if self.quality == ChordQuality.DIM:
            numeral += "°"
        elif self.quality == ChordQuality.AUG:
            numeral += "+"
        elif self.quality in (ChordQuality.DOMINANT7, ChordQuality.M7):
            numeral += "7"
        elif self.quality == ChordQuality.MAJ7:
            numeral += "maj7"

        return numeral
