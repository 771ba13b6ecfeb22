"""Coarse style heuristic used to tune how hard the filters push toward the key."""

from dataclasses import dataclass
from typing import Optional

from ..analysis.tempo import seconds_per_beat
from ..config import StyleConfig
from ..core import Key, Provenance, Timeline, chromatic_distance
from .theory import diatonic_quality, nearest_diatonic

EASY_POP = "easy_pop"
COLORFUL_POP = "colorful_pop"
JAZZ_LIKE = "jazz_like"


@dataclass
class TimelineStats:
    """Counts describing a timeline's harmonic vocabulary."""
    total: int = 0
    in_scale: int = 0
    inversions: int = 0
    extensions: int = 0
    secondary_dominants: int = 0
    borrowed: int = 0
    chromatic: int = 0

    def share(self, count: int) -> float:
        return count / self.total if self.total else 0.0

    @classmethod
    def from_timeline(cls, timeline: Timeline, key: Key) -> "TimelineStats":
        stats = cls(total=len(timeline))
        for ev in timeline:
            if key.contains(ev.root):
                stats.in_scale += 1
            if ev.is_slash:
                stats.inversions += 1
            if ev.quality.is_extended:
                stats.extensions += 1
            if ev.provenance == Provenance.SECONDARY_DOMINANT:
                stats.secondary_dominants += 1
            elif ev.provenance == Provenance.BORROWED:
                stats.borrowed += 1
            elif ev.provenance == Provenance.CHROMATIC:
                stats.chromatic += 1
        return stats


@dataclass(frozen=True)
class StyleProfile:
    mode: str
    confidence: float
    chords_per_bar: float = 0.0


def detect_style(
    stats: TimelineStats,
    bpm: float,
    duration: float,
    config: Optional[StyleConfig] = None,
) -> StyleProfile:
    """
    Classify the harmonic style from vocabulary and density.

    Args:
        stats: Timeline statistics
        bpm: Tempo
        duration: Covered span in seconds
        config: Thresholds

    Returns:
        StyleProfile with mode easy_pop, colorful_pop or jazz_like
    """
    config = config or StyleConfig()
    if stats.total == 0 or duration <= 0:
        return StyleProfile(EASY_POP, 0.5)

    bars = max(1.0, duration / (seconds_per_beat(bpm) * config.beats_per_bar))
    per_bar = stats.total / bars

    diatonic = stats.share(stats.in_scale)
    chromatic = stats.share(stats.chromatic)
    borrowed = stats.share(stats.borrowed)
    extended = stats.share(stats.extensions)

    if (
        diatonic >= config.easy_min_diatonic
        and chromatic <= config.easy_max_chromatic
        and borrowed <= config.easy_max_borrowed
        and extended <= config.easy_max_extensions
        and per_bar <= config.easy_max_chords_per_bar
    ):
        return StyleProfile(EASY_POP, 0.9, per_bar)

    if (
        diatonic >= config.colorful_min_diatonic
        and chromatic <= config.colorful_max_chromatic
        and per_bar <= config.colorful_max_chords_per_bar
    ):
        return StyleProfile(COLORFUL_POP, 0.8, per_bar)

    return StyleProfile(JAZZ_LIKE, 0.8, per_bar)


def enforce_easy_diatonic(timeline: Timeline, key: Key) -> Timeline:
    """Snap out-of-key roots a semitone from a scale degree onto it."""
    events = []
    for ev in timeline:
        if not key.contains(ev.root):
            target = nearest_diatonic(ev.root, key)
            if chromatic_distance(ev.root, target) <= 1:
                ev = ev.evolve(
                    root=target,
                    quality=diatonic_quality(target, key),
                    bass_pitch_class=-1,
                    provenance=Provenance.DIATONIC,
                    source="style",
                )
        events.append(ev)
    return timeline.with_events(events)
