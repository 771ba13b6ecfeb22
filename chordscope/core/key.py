"""Key data class - the tonal center of a clip."""

from dataclasses import dataclass
from typing import List

from .constants import MAJOR_SCALE, MINOR_SCALE
from .pitch import to_pc, pc_name


@dataclass(frozen=True)
class Key:
    """Tonic pitch class plus mode.

    Keys are replaced wholesale by later passes, never edited in place.
    """

    root: int  # Tonic pitch class (0-11)
    minor: bool = False
    confidence: float = 0.0  # 0.0 - 1.0

    def __post_init__(self):
        object.__setattr__(self, "root", to_pc(self.root))
        object.__setattr__(self, "minor", bool(self.minor))
        object.__setattr__(self, "confidence", float(min(1.0, max(0.0, self.confidence))))

    @property
    def mode(self) -> str:
        return "minor" if self.minor else "major"

    @property
    def name(self) -> str:
        """Key name (e.g., 'A minor')."""
        return f"{pc_name(self.root)} {self.mode}"

    @property
    def scale(self) -> List[int]:
        """Pitch classes of the key's scale."""
        intervals = MINOR_SCALE if self.minor else MAJOR_SCALE
        return [to_pc(self.root + i) for i in intervals]

    def contains(self, pc: int) -> bool:
        """Whether a pitch class is diatonic to this key."""
        return to_pc(pc) in self.scale

    def same_tonality(self, other: "Key") -> bool:
        return self.root == other.root and self.minor == other.minor

    @property
    def relative(self) -> "Key":
        """Relative major/minor key."""
        if self.minor:
            return Key(self.root + 3, False, self.confidence)
        return Key(self.root - 3, True, self.confidence)

    @property
    def parallel(self) -> "Key":
        """Parallel major/minor key (same root, other mode)."""
        return Key(self.root, not self.minor, self.confidence)
