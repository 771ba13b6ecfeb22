"""Clip-level heuristics - where the music starts and how it behaves."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import ProfileConfig
from .features import FeatureSet


@dataclass(frozen=True)
class MusicStart:
    """First frame with sustained musical content."""
    frame: int
    time: float


@dataclass(frozen=True)
class SongProfile:
    """Coarse description of how a song moves, used to scale thresholds.

    Attributes:
        chroma_variance: Mean L1 chroma change between energetic frames
        sustain_level: Share of energetic frames whose energy holds steady
        chroma_change_threshold: Chroma distance that counts as a harmonic change
        min_duration_multiplier: Scale applied to minimum segment durations
    """
    chroma_variance: float = 0.5
    sustain_level: float = 0.5
    chroma_change_threshold: float = 0.4
    min_duration_multiplier: float = 1.0


def find_music_start(features: FeatureSet, config: Optional[ProfileConfig] = None) -> MusicStart:
    """
    Locate the start of the music.

    A frame qualifies when it is loud enough and carries either a bass
    note or a clear chroma peak (guitar or piano intros have no bass).
    The music starts one frame before the run of qualifying frames
    completes, and never later than ``max_start_seconds``.

    Args:
        features: Extracted features
        config: Thresholds

    Returns:
        MusicStart (frame 0 when nothing qualifies)
    """
    config = config or ProfileConfig()
    threshold = features.energy_p50 * config.start_energy_ratio

    frame = 0
    stable = 0
    for i in range(features.num_frames):
        chroma = features.chroma[i]
        total = chroma.sum()
        clear_pitch = total > 0 and chroma.max() > (total / 12) * config.clear_pitch_ratio
        has_bass = features.bass[i] >= 0

        if features.energy[i] >= threshold and (has_bass or clear_pitch):
            stable += 1
            if stable >= config.start_stable_frames:
                frame = max(0, i - (config.start_stable_frames - 1))
                break
        else:
            stable = 0

    frame = min(frame, int(np.floor(config.max_start_seconds / features.sec_per_frame)))
    return MusicStart(frame=frame, time=features.time_of(frame))


def analyze_song_profile(features: FeatureSet, config: Optional[ProfileConfig] = None) -> SongProfile:
    """
    Measure harmonic movement and sustain.

    Sustained songs (pads, long chords) get longer minimum durations so
    that decay wobble is not read as chord changes.
    """
    config = config or ProfileConfig()
    energy = features.energy
    p70 = features.energy_p70

    if features.num_frames > 1:
        diffs = np.abs(np.diff(features.chroma, axis=0)).sum(axis=1)
        energetic = energy[1:] >= p70 * 0.3
        chroma_variance = float(diffs[energetic].mean()) if energetic.any() else 0.5
    else:
        chroma_variance = 0.5

    if features.num_frames > 2:
        mid = energy[1:-1]
        prev = energy[:-2]
        loud = mid >= p70 * 0.5
        ratio = mid / np.where(prev > 0, prev, 1.0)
        steady = loud & (ratio > 0.8) & (ratio < 1.2)
        sustain_level = float(steady.sum() / loud.sum()) if loud.any() else 0.5
    else:
        sustain_level = 0.5

    multiplier = (
        config.sustained_duration_multiplier
        if sustain_level > config.sustained_level
        else 1.0
    )
    return SongProfile(
        chroma_variance=chroma_variance,
        sustain_level=sustain_level,
        chroma_change_threshold=0.25 + chroma_variance * 0.3,
        min_duration_multiplier=multiplier,
    )
