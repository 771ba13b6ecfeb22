"""Tests for tonic re-validation.

Tests cover:
- Evidence gathering (durations, cadences, opening and closing roots)
- Key replacement when another tonic clearly wins
- The guard against drifting from I to IV
- The per-analysis key change limit
"""

import pytest

from chordscope.config import TonicConfig
from chordscope.core import ChordEvent, Key, Timeline
from chordscope.diagnostics import DiagnosticCollector
from chordscope.inference import KeyChangeGuard, TonicValidator
from chordscope.inference.tonic import TonicCandidate

C_MAJOR = Key(0, False, 0.7)


def timeline_of(chords, end):
    """Timeline from (start, root) pairs."""
    return Timeline([ChordEvent(start, root, confidence=0.8) for start, root in chords], 0.0, end)


def subdominant_heavy():
    """Opens and closes on C but spends most of its time on F."""
    return timeline_of([(0.0, 0), (1.0, 5), (9.0, 0), (10.0, 5), (18.0, 0)], 19.0)


class TestEvidence:
    """Tests for TonicValidator.evidence."""

    def test_durations_use_real_event_lengths(self):
        tl = timeline_of([(0.0, 0), (1.0, 5), (9.0, 0)], 12.0)
        evidence = TonicValidator().evidence(tl)
        assert evidence.durations[0] == pytest.approx(4.0)
        assert evidence.durations[5] == pytest.approx(8.0)
        assert evidence.dominant_root == 5

    def test_cadences(self):
        """IV-V-I credits the final chord."""
        tl = timeline_of([(0.0, 5), (1.0, 7), (2.0, 0)], 3.0)
        evidence = TonicValidator().evidence(tl)
        config = TonicConfig()
        assert evidence.cadences[0] == pytest.approx(config.fourth_cadence + config.four_five_one)
        assert evidence.opening_root == 5
        assert evidence.closing_root == 0


class TestValidate:
    """Tests for TonicValidator.validate."""

    def test_short_timeline_untouched(self):
        tl = timeline_of([(0.0, 7), (1.0, 0), (2.0, 7)], 3.0)
        assert TonicValidator().validate(tl, C_MAJOR) is C_MAJOR

    def test_consistent_key_kept(self):
        tl = timeline_of(
            [(0.0, 0), (1.0, 5), (2.0, 7), (3.0, 0), (5.0, 5), (6.0, 7), (7.0, 0)], 9.0
        )
        key = TonicValidator().validate(tl, C_MAJOR)
        assert key.same_tonality(C_MAJOR)

    def test_slightly_longer_subdominant_does_not_win(self):
        """A song on I with a somewhat longer IV stays on I."""
        tl = timeline_of(
            [(0.0, 0), (2.0, 5), (5.2, 7), (6.2, 0), (8.2, 5), (11.4, 7), (12.4, 0)], 14.0
        )
        assert TonicValidator().validate(tl, C_MAJOR).same_tonality(C_MAJOR)

    def test_subdominant_guard_blocks(self):
        """Opening on I, moving to IV needs overwhelming evidence."""
        collector = DiagnosticCollector()
        key = TonicValidator(observer=collector).validate(subdominant_heavy(), C_MAJOR)
        assert key.same_tonality(C_MAJOR)
        assert collector.named("subdominant_blocked")

    def test_replaced_without_guard(self):
        """With the guard thresholds relaxed, the dominant IV takes over."""
        config = TonicConfig(subdominant_anchored_gain=0.0, subdominant_anchored_fit=0.0)
        collector = DiagnosticCollector()
        key = TonicValidator(config, collector).validate(subdominant_heavy(), C_MAJOR)
        assert key.root == 5
        assert not key.minor
        assert key.confidence == pytest.approx(0.8)
        assert collector.named("key_changed")

    def test_change_limit(self):
        """Once the allowance is used up the key stays."""
        config = TonicConfig(subdominant_anchored_gain=0.0, subdominant_anchored_fit=0.0)
        guard = KeyChangeGuard(max_changes=1)
        validator = TonicValidator(config)

        first = validator.validate(subdominant_heavy(), C_MAJOR, guard)
        assert first.root == 5
        assert guard.changes == 1
        assert not guard.allows()

        second = validator.validate(subdominant_heavy(), C_MAJOR, guard)
        assert second.same_tonality(C_MAJOR)


class TestSubdominantGuard:
    """Tests for TonicValidator.subdominant_guard."""

    def test_anchored_needs_large_gain(self):
        validator = TonicValidator()
        candidate = TonicCandidate(5, False, score=150.0, fit=0.95)
        assert not validator.subdominant_guard(candidate, 120.0, Key(0), opening_root=0)
        assert validator.subdominant_guard(candidate, 100.0, Key(0), opening_root=0)

    def test_unanchored_threshold(self):
        validator = TonicValidator()
        candidate = TonicCandidate(5, False, score=150.0, fit=0.9)
        assert validator.subdominant_guard(candidate, 120.0, Key(0), opening_root=2)
        low_fit = TonicCandidate(5, False, score=150.0, fit=0.8)
        assert not validator.subdominant_guard(low_fit, 120.0, Key(0), opening_root=2)

    def test_other_moves_unaffected(self):
        validator = TonicValidator()
        assert validator.subdominant_guard(TonicCandidate(7, False, 150.0, 0.7), 149.0, Key(0), 0)
        assert validator.subdominant_guard(TonicCandidate(5, False, 150.0, 0.7), 149.0, Key(0, True), 0)
