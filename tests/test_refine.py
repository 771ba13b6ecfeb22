"""Tests for timeline refinement.

Tests cover:
- Chromatic validation and light smoothing
- Slash chords and extensions
- Finalize (minimum duration, beat snapping)
- Style profile and outlier smoothing
- Pattern memory
"""

import numpy as np
import pytest

from chordscope.analysis import FeatureSet
from chordscope.config import RefinementConfig
from chordscope.core import ChordEvent, ChordQuality, Key, Provenance, Timeline
from chordscope.diagnostics import DiagnosticCollector
from chordscope.inference import (
    PatternMemory,
    TimelineRefiner,
    TimelineStats,
    detect_style,
    enforce_easy_diatonic,
    find_patterns,
)
from chordscope.inference.style import COLORFUL_POP, EASY_POP, JAZZ_LIKE

C_MAJOR = Key(0, False, 0.9)


def chroma_of(*pcs) -> np.ndarray:
    chroma = np.zeros(12)
    chroma[list(pcs)] = 1.0
    return chroma / chroma.sum()


def make_features(sections) -> FeatureSet:
    """Build features from (chroma pitch classes, bass, frames) sections at 10 frames/s."""
    chroma, bass = [], []
    for pcs, bp, n in sections:
        chroma.extend([chroma_of(*pcs)] * n)
        bass.extend([bp] * n)
    return FeatureSet(np.array(chroma), np.array(bass), np.ones(len(bass)), sr=10, hop_length=1)


def timeline_of(chords, end, provenance=None):
    """Timeline from (start, root, confidence) tuples; frame index follows 10 frames/s."""
    events = [
        ChordEvent(
            start,
            root,
            confidence=conf,
            frame_index=int(round(start * 10)),
            provenance=provenance or Provenance.DIATONIC,
        )
        for start, root, conf in chords
    ]
    return Timeline(events, 0.0, end)


# ============================================================================
# Chromatic Validation and Smoothing Tests
# ============================================================================

class TestValidateChromatic:
    """Tests for TimelineRefiner.validate_chromatic."""

    def test_short_chromatic_dropped(self):
        collector = DiagnosticCollector()
        tl = Timeline(
            [
                ChordEvent(0.0, 0, confidence=0.9),
                ChordEvent(1.0, 6, confidence=0.6, provenance=Provenance.CHROMATIC),
                ChordEvent(1.5, 7, confidence=0.9),
            ],
            0.0,
            3.0,
        )
        result = TimelineRefiner(observer=collector).validate_chromatic(tl, C_MAJOR)
        assert result.roots == [0, 7]
        assert collector.named("chromatic_dropped")[0].data["reason"] == "short"

    def test_long_reasonable_chromatic_kept(self):
        tl = Timeline(
            [
                ChordEvent(0.0, 0, confidence=0.9),
                ChordEvent(1.0, 10, confidence=0.7, provenance=Provenance.CHROMATIC),
            ],
            0.0,
            3.0,
        )
        assert TimelineRefiner().validate_chromatic(tl, C_MAJOR).roots == [0, 10]

    def test_unexplained_chromatic_dropped(self):
        """A long but unexplained chromatic chord needs high confidence."""
        tl = Timeline(
            [
                ChordEvent(0.0, 0, confidence=0.9),
                ChordEvent(1.0, 8, confidence=0.7),
                ChordEvent(2.0, 1, confidence=0.7, provenance=Provenance.CHROMATIC),
            ],
            0.0,
            4.0,
        )
        result = TimelineRefiner().validate_chromatic(tl, C_MAJOR)
        assert 1 not in result.roots

    def test_borrowed_chords_untouched(self):
        tl = Timeline(
            [ChordEvent(0.0, 0, confidence=0.9), ChordEvent(1.0, 8, confidence=0.1, provenance=Provenance.BORROWED)],
            0.0,
            1.2,
        )
        assert TimelineRefiner().validate_chromatic(tl, C_MAJOR).roots == [0, 8]


class TestSmoothTransitions:
    """Tests for TimelineRefiner.smooth_transitions."""

    def test_weak_jump_removed(self):
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 6, 0.4), (2.0, 7, 0.9)], 3.0)
        assert TimelineRefiner().smooth_transitions(tl).roots == [0, 7]

    def test_confident_chord_kept(self):
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 6, 0.8), (2.0, 7, 0.9)], 3.0)
        assert TimelineRefiner().smooth_transitions(tl).roots == [0, 6, 7]


# ============================================================================
# Slash and Extension Tests
# ============================================================================

class TestSlashChords:
    """Tests for TimelineRefiner.add_slash_chords."""

    def test_third_in_bass(self):
        features = make_features([((0, 4, 7), 4, 10)])
        tl = timeline_of([(0.0, 0, 0.9)], 1.0)
        result = TimelineRefiner().add_slash_chords(tl, features, C_MAJOR)
        assert result[0].bass_pitch_class == 4
        assert result[0].label == "C/E"

    def test_root_in_bass(self):
        features = make_features([((0, 4, 7), 0, 10)])
        tl = timeline_of([(0.0, 0, 0.9)], 1.0)
        result = TimelineRefiner().add_slash_chords(tl, features, C_MAJOR)
        assert not result[0].is_slash

    def test_weak_foreign_bass_ignored(self):
        """A non-chord bass without chroma support is not a slash chord."""
        features = make_features([((0, 4, 7), 6, 10)])
        tl = timeline_of([(0.0, 0, 0.9)], 1.0)
        result = TimelineRefiner().add_slash_chords(tl, features, C_MAJOR)
        assert not result[0].is_slash


class TestExtensions:
    """Tests for TimelineRefiner.add_extensions."""

    def extend(self, pcs, root, quality=ChordQuality.MAJOR):
        features = make_features([(pcs, root, 5)])
        tl = Timeline([ChordEvent(0.0, root, quality, frame_index=2)], 0.0, 0.5)
        return TimelineRefiner().add_extensions(tl, features)[0].quality

    def test_dominant_seventh(self):
        assert self.extend((0, 4, 7, 10), 0) == ChordQuality.DOMINANT7

    def test_major_seventh(self):
        assert self.extend((0, 4, 7, 11), 0) == ChordQuality.MAJ7

    def test_minor_seventh(self):
        assert self.extend((9, 0, 4, 7), 9, ChordQuality.MINOR) == ChordQuality.M7

    def test_ninth(self):
        assert self.extend((7, 11, 2, 5, 9), 7) == ChordQuality.NINE

    def test_sus4(self):
        assert self.extend((0, 5, 7), 0) == ChordQuality.SUS4

    def test_plain_triad_unchanged(self):
        assert self.extend((0, 4, 7), 0) == ChordQuality.MAJOR

    def test_slash_chords_not_extended(self):
        features = make_features([((0, 4, 7, 10), 4, 5)])
        tl = Timeline([ChordEvent(0.0, 0, bass_pitch_class=4, frame_index=2)], 0.0, 0.5)
        assert TimelineRefiner().add_extensions(tl, features)[0].quality == ChordQuality.MAJOR


# ============================================================================
# Finalize Tests
# ============================================================================

class TestFinalize:
    """Tests for TimelineRefiner.finalize."""

    def test_short_out_of_key_dropped_and_snapped(self):
        """A brief Db is dropped and the next boundary snaps to the beat."""
        features = make_features([((0, 4, 7), 0, 30)])
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 1, 0.9), (1.1, 7, 0.9)], 3.0)
        result = TimelineRefiner().finalize(tl, features, C_MAJOR, bpm=120)
        assert result.roots == [0, 7]
        assert result[1].start_time == pytest.approx(1.0)

    def test_far_from_beat_not_snapped(self):
        features = make_features([((0, 4, 7), 0, 30)])
        tl = timeline_of([(0.0, 0, 0.9), (1.25, 7, 0.9)], 3.0)
        result = TimelineRefiner().finalize(tl, features, C_MAJOR, bpm=120)
        assert result[1].start_time == pytest.approx(1.25)

    def test_first_chord_kept_even_if_short(self):
        features = make_features([((0, 4, 7), 0, 30)])
        tl = timeline_of([(0.0, 2, 0.9), (0.4, 7, 0.9)], 3.0)
        result = TimelineRefiner().finalize(tl, features, C_MAJOR, bpm=120)
        assert result.roots == [2, 7]


# ============================================================================
# Style Tests
# ============================================================================

class TestStyle:
    """Tests for the style profile."""

    def test_diatonic_is_easy_pop(self):
        tl = timeline_of([(0.0, 0, 0.9), (2.0, 5, 0.9), (4.0, 7, 0.9), (6.0, 0, 0.9)], 8.0)
        style = detect_style(TimelineStats.from_timeline(tl, C_MAJOR), 120, 8.0)
        assert style.mode == EASY_POP

    def test_chromatic_heavy_is_jazz_like(self):
        tl = timeline_of(
            [(0.0, 0, 0.9), (1.0, 1, 0.9), (2.0, 6, 0.9), (3.0, 8, 0.9)],
            4.0,
            provenance=Provenance.CHROMATIC,
        )
        style = detect_style(TimelineStats.from_timeline(tl, C_MAJOR), 120, 4.0)
        assert style.mode == JAZZ_LIKE

    def test_some_colour_is_colorful_pop(self):
        events = [ChordEvent(float(i), r, confidence=0.9) for i, r in enumerate([0, 5, 7, 0, 9, 2, 7])]
        events += [
            ChordEvent(7.0, 10, confidence=0.9, provenance=Provenance.BORROWED),
            ChordEvent(8.0, 8, confidence=0.9, provenance=Provenance.BORROWED),
            ChordEvent(9.0, 3, confidence=0.9, provenance=Provenance.BORROWED),
        ]
        tl = Timeline(events, 0.0, 10.0)
        style = detect_style(TimelineStats.from_timeline(tl, C_MAJOR), 120, 10.0)
        assert style.mode == COLORFUL_POP

    def test_empty_timeline(self):
        style = detect_style(TimelineStats(), 120, 0.0)
        assert style.mode == EASY_POP
        assert style.confidence == pytest.approx(0.5)

    def test_enforce_easy_diatonic(self):
        """A root a semitone from the scale is pulled onto it."""
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 1, 0.5)], 2.0, provenance=Provenance.CHROMATIC)
        result = enforce_easy_diatonic(tl, C_MAJOR)
        assert C_MAJOR.contains(result[1].root)
        assert result[1].source == "style"

    def test_outlier_smoothed(self):
        collector = DiagnosticCollector()
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 1, 0.5), (2.0, 0, 0.9)], 3.0)
        result = TimelineRefiner(observer=collector).smooth_outliers(tl, C_MAJOR)
        assert result[1].root == 0
        assert result[1].source == "smoothing"
        assert collector.named("outlier_smoothed")

    def test_confident_outlier_kept(self):
        tl = timeline_of([(0.0, 0, 0.9), (1.0, 1, 0.85), (2.0, 0, 0.9)], 3.0)
        assert TimelineRefiner().smooth_outliers(tl, C_MAJOR)[1].root == 1


# ============================================================================
# Pattern Memory Tests
# ============================================================================

class TestPatterns:
    """Tests for pattern discovery and correction."""

    def test_find_repeated_progression(self):
        roots = [0, 5, 7, 0, 5, 7, 0, 5, 7, 0, 5, 7, 0]
        patterns = find_patterns(roots)
        assert any(p.roots == (0, 5, 7, 0) and p.count >= 3 for p in patterns)
        counts = [p.count for p in patterns]
        assert counts == sorted(counts, reverse=True)

    def test_no_patterns_in_short_timeline(self):
        assert find_patterns([0, 5]) == []

    def test_weak_mismatch_corrected(self):
        """A low-confidence chord breaking the progression is replaced."""
        roots = [0, 5, 7, 9] * 4
        roots[9] = 2
        chords = [(float(i), r, 0.5 if i == 9 else 0.9) for i, r in enumerate(roots)]
        tl = timeline_of(chords, 16.0)
        collector = DiagnosticCollector()
        result = PatternMemory(observer=collector).apply(tl, C_MAJOR)
        assert result[9].root == 5
        assert result[9].quality == ChordQuality.MAJOR
        assert result[9].source == "pattern"
        assert collector.named("pattern_fix")

    def test_confident_mismatch_kept(self):
        roots = [0, 5, 7, 9] * 4
        roots[9] = 2
        tl = timeline_of([(float(i), r, 0.9) for i, r in enumerate(roots)], 16.0)
        assert PatternMemory().apply(tl, C_MAJOR)[9].root == 2


# ============================================================================
# Full Refinement Tests
# ============================================================================

class TestRefine:
    """Tests for the complete refinement chain."""

    def test_refine_clean_progression(self):
        features = make_features([((0, 4, 7), 0, 20), ((5, 9, 0), 5, 20)])
        tl = Timeline(
            [
                ChordEvent(0.0, 0, confidence=1.0, frame_index=0),
                ChordEvent(2.0, 5, confidence=1.0, frame_index=20),
            ],
            0.0,
            4.0,
        )
        result = TimelineRefiner().refine(tl, features, C_MAJOR, bpm=120)
        assert result.timeline.roots == [0, 5]
        assert result.timeline.is_partition()
        assert result.style.mode == EASY_POP
        assert result.stats.total == 2

    def test_style_filters_disabled(self):
        """Without style filters near-miss roots survive."""
        features = make_features([((0, 4, 7), 0, 40)])
        tl = timeline_of(
            [(0.0, 0, 0.9), (1.0, 5, 0.9), (2.0, 1, 0.9), (3.0, 7, 0.9)],
            4.0,
        )
        refiner = TimelineRefiner(RefinementConfig(enable_style_filters=False))
        result = refiner.refine(tl, features, C_MAJOR, bpm=120)
        assert 1 in result.timeline.roots
