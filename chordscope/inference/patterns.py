"""Pattern memory - recurring root sequences and the chords that break them."""

from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..config import RefinementConfig
from ..core import ChordEvent, Key, Provenance, Timeline
from ..diagnostics import DiagnosticObserver, Emitter
from .theory import diatonic_quality


@dataclass(frozen=True)
class Pattern:
    """A root sequence and how often it occurs (overlapping windows)."""
    roots: Tuple[int, ...]
    count: int

    @property
    def length(self) -> int:
        return len(self.roots)


def find_patterns(
    roots: Sequence[int],
    min_length: int = 2,
    max_length: int = 6,
    min_repeats: int = 3,
) -> List[Pattern]:
    """
    Find recurring root sequences.

    Args:
        roots: Chord roots in timeline order
        min_length: Shortest sequence considered
        max_length: Longest sequence considered
        min_repeats: Occurrences needed to report a pattern

    Returns:
        Patterns sorted by count, then length, both descending
    """
    found: List[Pattern] = []
    for length in range(min_length, max_length + 1):
        if length > len(roots):
            break
        counts = Counter(
            tuple(roots[i:i + length]) for i in range(len(roots) - length + 1)
        )
        for seq, count in counts.items():
            if count >= min_repeats:
                found.append(Pattern(seq, count))
    found.sort(key=lambda p: (-p.count, -p.length))
    return found


class PatternMemory:
    """Correct weak chords that break an otherwise recurring progression."""

    def __init__(
        self,
        config: Optional[RefinementConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or RefinementConfig()
        self.emit = Emitter("patterns", observer)

    def find(self, timeline: Timeline) -> List[Pattern]:
        cfg = self.config
        return find_patterns(
            timeline.roots, cfg.pattern_min_length, cfg.pattern_max_length, cfg.pattern_min_repeats
        )

    def _expected_root(self, roots: List[int], i: int, patterns: List[Pattern]) -> Optional[int]:
        """Root the strongest pattern expects at ``i`` when ``i`` is its only mismatch."""
        for pattern in patterns:
            n = pattern.length
            for offset in range(n):
                start = i - offset
                if start < 0 or start + n > len(roots):
                    continue
                window = roots[start:start + n]
                mismatches = [k for k in range(n) if window[k] != pattern.roots[k]]
                if mismatches == [offset]:
                    return pattern.roots[offset]
        return None

    def apply(self, timeline: Timeline, key: Key, patterns: Optional[List[Pattern]] = None) -> Timeline:
        """
        Apply pattern corrections.

        Only chords below ``pattern_fix_max_confidence`` are touched, and
        only toward a diatonic root.
        """
        if patterns is None:
            patterns = self.find(timeline)
        if not patterns:
            return timeline

        roots = timeline.roots
        events: List[ChordEvent] = []
        for i, ev in enumerate(timeline):
            if ev.confidence < self.config.pattern_fix_max_confidence:
                expected = self._expected_root(roots, i, patterns)
                if expected is not None and expected != ev.root and key.contains(expected):
                    self.emit("pattern_fix", time=ev.start_time, old=ev.root, new=expected)
                    ev = ev.evolve(
                        root=expected,
                        quality=diatonic_quality(expected, key),
                        bass_pitch_class=-1,
                        provenance=Provenance.DIATONIC,
                        source="pattern",
                    )
                    roots[i] = expected
            events.append(ev)
        return timeline.with_events(events)
