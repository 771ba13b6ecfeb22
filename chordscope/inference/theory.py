"""Music theory helpers - diatonic, borrowed and secondary-dominant chords.

Every decoder and refinement pass asks the same questions about a root
relative to the working key; the answers live here so the allow-lists are
defined once.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..core import ChordQuality, Key, Provenance, to_pc, chromatic_distance

MAJOR = ChordQuality.MAJOR
MINOR = ChordQuality.MINOR
DIM = ChordQuality.DIM

# Triad quality per scale degree
MAJOR_KEY_QUALITIES = (MAJOR, MINOR, MINOR, MAJOR, MAJOR, MINOR, DIM)
MINOR_KEY_QUALITIES = (MINOR, DIM, MAJOR, MINOR, MINOR, MAJOR, MAJOR)

MAJOR_KEY_NUMERALS = ("I", "ii", "iii", "IV", "V", "vi", "vii°")
MINOR_KEY_NUMERALS = ("i", "ii°", "III", "iv", "v", "VI", "VII")

# (semitones above tonic, quality, numeral) of chords borrowed into a key.
# Candidates considered by the decoders:
DECODER_BORROWED_MAJOR = (
    (4, MAJOR, "III"),
    (10, MAJOR, "bVII"),
    (3, MAJOR, "bIII"),
    (5, MINOR, "iv"),
    (8, MAJOR, "bVI"),
)
DECODER_BORROWED_MINOR = (
    (7, MAJOR, "V"),
    (5, MAJOR, "IV"),
)

# Chords the consensus merge accepts as sanctioned colour
MERGE_BORROWED_MAJOR = (
    (4, MAJOR, "III"),
    (10, MAJOR, "bVII"),
    (8, MAJOR, "bVI"),
    (3, MAJOR, "bIII"),
    (5, MINOR, "iv"),
    (2, MAJOR, "II"),
)
MERGE_BORROWED_MINOR = (
    (3, MAJOR, "III"),
    (10, MAJOR, "VII"),
    (7, MAJOR, "V"),
    (5, MAJOR, "IV"),
    (0, MAJOR, "I"),
)

# Roots that are common modal borrowing even without a resolution
REASONABLE_MAJOR = (10, 3, 5)  # bVII, bIII, iv
REASONABLE_MINOR = (7, 11, 5)  # V, leading-tone VII, IV


@dataclass(frozen=True)
class ScaleChord:
    """A chord the theory layer sanctions in a key."""
    root: int
    quality: ChordQuality
    numeral: str
    provenance: Provenance = Provenance.DIATONIC
    degree: int = 0  # 1-7 for diatonic chords, 0 otherwise
    target: int = -1  # Resolution target of a secondary dominant

    @property
    def is_minor(self) -> bool:
        return self.quality.is_minor


def diatonic_chords(key: Key) -> List[ScaleChord]:
    """The seven diatonic triads of a key, in scale-degree order."""
    qualities = MINOR_KEY_QUALITIES if key.minor else MAJOR_KEY_QUALITIES
    numerals = MINOR_KEY_NUMERALS if key.minor else MAJOR_KEY_NUMERALS
    return [
        ScaleChord(pc, quality, numeral, Provenance.DIATONIC, degree=i + 1)
        for i, (pc, quality, numeral) in enumerate(zip(key.scale, qualities, numerals))
    ]


def diatonic_quality(pc: int, key: Key) -> ChordQuality:
    """Triad quality of the diatonic chord on ``pc`` (major if ``pc`` is not diatonic)."""
    for chord in diatonic_chords(key):
        if chord.root == to_pc(pc):
            return chord.quality
    return MAJOR


def secondary_dominants(key: Key) -> List[ScaleChord]:
    """
    Major triads a fifth above each diatonic degree.

    The tonic and the diminished degree (vii° in major, ii° in minor) are
    not tonicized.
    """
    skip = 1 if key.minor else 6
    result = []
    for i, target in enumerate(key.scale):
        if i == 0 or i == skip:
            continue
        result.append(ScaleChord(
            root=to_pc(target + 7),
            quality=MAJOR,
            numeral=f"V/{(MINOR_KEY_NUMERALS if key.minor else MAJOR_KEY_NUMERALS)[i]}",
            provenance=Provenance.SECONDARY_DOMINANT,
            target=target,
        ))
    return result


def _borrowed(key: Key, table) -> List[ScaleChord]:
    return [
        ScaleChord(to_pc(key.root + offset), quality, numeral, Provenance.BORROWED)
        for offset, quality, numeral in table
    ]


def borrowed_chords(key: Key) -> List[ScaleChord]:
    """Borrowed chords the decoders may propose."""
    return _borrowed(key, DECODER_BORROWED_MINOR if key.minor else DECODER_BORROWED_MAJOR)


def allowed_borrowed(key: Key) -> List[ScaleChord]:
    """Borrowed chords the merge treats as sanctioned rather than chromatic."""
    return _borrowed(key, MERGE_BORROWED_MINOR if key.minor else MERGE_BORROWED_MAJOR)


def is_borrowed_root(pc: int, key: Key) -> bool:
    return any(chord.root == to_pc(pc) for chord in allowed_borrowed(key))


def is_secondary_dominant_root(pc: int, key: Key) -> bool:
    return any(chord.root == to_pc(pc) for chord in secondary_dominants(key))


def classify_root(pc: int, key: Key) -> Provenance:
    """Theory category of a chord root in a key."""
    if key.contains(pc):
        return Provenance.DIATONIC
    if is_borrowed_root(pc, key):
        return Provenance.BORROWED
    if is_secondary_dominant_root(pc, key):
        return Provenance.SECONDARY_DOMINANT
    return Provenance.CHROMATIC


def is_reasonable_chromatic(root: int, key: Key, prev_root: Optional[int] = None) -> bool:
    """
    Whether a non-diatonic root has a conventional explanation.

    Accepts common modal borrowing, any secondary dominant and a
    half-step approach from the previous chord.
    """
    root = to_pc(root)
    common = REASONABLE_MINOR if key.minor else REASONABLE_MAJOR
    if any(root == to_pc(key.root + offset) for offset in common):
        return True

    if any(root == to_pc(pc + 7) for pc in key.scale):
        return True

    if prev_root is not None and prev_root >= 0:
        if chromatic_distance(root, prev_root) == 1:
            return True

    return False


def nearest_diatonic(pc: int, key: Key) -> int:
    """Closest scale pitch class (ties go to the lower scale degree)."""
    pc = to_pc(pc)
    return min(key.scale, key=lambda d: chromatic_distance(pc, d))


def transition_score(from_root: int, to_root: int) -> int:
    """Plausibility of moving between two roots (higher is smoother)."""
    if from_root == to_root:
        return 10
    step = to_pc(to_root - from_root)
    if step in (5, 7):
        return 8
    if step in (2, 10):
        return 5
    if step in (3, 4, 8, 9):
        return 4
    if step == 6:
        return 3
    return 2
