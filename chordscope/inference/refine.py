"""Refinement passes applied to the merged timeline.

Each pass takes a Timeline and returns a new one, so every pass can be
run and tested on its own. ``TimelineRefiner.refine`` applies them in
a fixed order:

1. chromatic validation
2. light transition smoothing
3. slash/inversion detection
4. extension decoration
5. finalize (minimum duration, beat snapping)
6. style filters (diatonic enforcement and outlier smoothing)
7. pattern memory
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..analysis.features import FeatureSet
from ..analysis.tempo import seconds_per_beat
from ..config import RefinementConfig, StyleConfig
from ..core import ChordEvent, ChordQuality, Key, Provenance, Timeline, to_pc
from ..diagnostics import DiagnosticObserver, Emitter
from .patterns import Pattern, PatternMemory
from .style import (
    COLORFUL_POP,
    EASY_POP,
    StyleProfile,
    TimelineStats,
    detect_style,
    enforce_easy_diatonic,
)
from .theory import diatonic_chords, is_reasonable_chromatic, transition_score


@dataclass
class RefinementResult:
    """Refined timeline plus what the passes learned about it."""
    timeline: Timeline
    style: StyleProfile
    stats: TimelineStats
    patterns: List[Pattern] = field(default_factory=list)


class TimelineRefiner:
    """Music-theory corrections on a decoded timeline."""

    def __init__(
        self,
        config: Optional[RefinementConfig] = None,
        style_config: Optional[StyleConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or RefinementConfig()
        self.style_config = style_config or StyleConfig()
        self.observer = observer
        self.emit = Emitter("refine", observer)
        self.patterns = PatternMemory(self.config, observer)

    def refine(self, timeline: Timeline, features: FeatureSet, key: Key, bpm: float) -> RefinementResult:
        """
        Run every pass in order.

        Args:
            timeline: Merged timeline
            features: Features the timeline was decoded from
            key: Working key
            bpm: Tempo

        Returns:
            RefinementResult with the final timeline
        """
        timeline = self.validate_chromatic(timeline, key)
        timeline = self.smooth_transitions(timeline)
        timeline = self.add_slash_chords(timeline, features, key)
        timeline = self.add_extensions(timeline, features)
        timeline = self.finalize(timeline, features, key, bpm)

        stats = TimelineStats.from_timeline(timeline, key)
        style = detect_style(stats, bpm, timeline.end - timeline.start, self.style_config)
        self.emit("style", mode=style.mode, chords_per_bar=round(style.chords_per_bar, 2))
        timeline = self.apply_style(timeline, key, style)

        patterns = self.patterns.find(timeline)
        if patterns:
            self.emit("patterns", count=len(patterns), strongest=list(patterns[0].roots))
        timeline = self.patterns.apply(timeline, key, patterns).collapsed()

        return RefinementResult(timeline, style, TimelineStats.from_timeline(timeline, key), patterns)

    # -- passes ----------------------------------------------------------

    def validate_chromatic(self, timeline: Timeline, key: Key) -> Timeline:
        """Drop chromatic chords too short or too weak to trust."""
        cfg = self.config
        kept: List[ChordEvent] = []
        for i, ev in enumerate(timeline):
            if key.contains(ev.root) or ev.provenance != Provenance.CHROMATIC:
                kept.append(ev)
                continue
            duration = timeline.duration_of(i)
            if duration < cfg.chromatic_short_seconds and ev.confidence < cfg.chromatic_strong_confidence:
                self.emit("chromatic_dropped", time=ev.start_time, chord=ev.label, reason="short")
                continue
            prev_root = kept[-1].root if kept else None
            if not is_reasonable_chromatic(ev.root, key, prev_root) and (
                duration < cfg.unreasonable_min_seconds or ev.confidence < cfg.unreasonable_min_confidence
            ):
                self.emit("chromatic_dropped", time=ev.start_time, chord=ev.label, reason="unexplained")
                continue
            kept.append(ev)
        return timeline.with_events(kept)

    def smooth_transitions(self, timeline: Timeline) -> Timeline:
        """Remove weak chords that make an otherwise smooth progression jumpy."""
        events = list(timeline)
        i = 1
        while i < len(events) - 1:
            prev, curr, nxt = events[i - 1], events[i], events[i + 1]
            direct = transition_score(prev.root, nxt.root)
            via = transition_score(prev.root, curr.root) + transition_score(curr.root, nxt.root)
            if direct > via and curr.confidence < self.config.smoothing_max_confidence:
                del events[i]
                continue
            i += 1
        return timeline.with_events(events)

    def add_slash_chords(self, timeline: Timeline, features: FeatureSet, key: Key) -> Timeline:
        """Mark chords whose sounding bass is not the root."""
        cfg = self.config
        scale_chords = diatonic_chords(key)
        events: List[ChordEvent] = []
        for ev in timeline:
            events.append(self._slash_for(ev, features, key, scale_chords, cfg))
        return timeline.with_events(events)

    def _slash_for(self, ev, features, key, scale_chords, cfg) -> ChordEvent:
        if ev.is_slash or not 0 <= ev.frame_index < features.num_frames:
            return ev
        bass = int(features.bass[ev.frame_index])
        if bass < 0 or bass == ev.root:
            return ev

        third = to_pc(ev.root + (3 if ev.is_minor else 4))
        fifth = to_pc(ev.root + 7)
        if bass in (third, fifth):
            return ev.evolve(bass_pitch_class=bass)

        strength = features.chroma[ev.frame_index][bass]
        for chord in scale_chords:
            if chord.root != ev.root and bass == to_pc(chord.root + 7):
                if strength > cfg.slash_secondary_strength:
                    return ev.evolve(bass_pitch_class=bass)
                break

        if not key.contains(bass) and strength > cfg.slash_chromatic_strength:
            return ev.evolve(bass_pitch_class=bass)
        return ev

    def add_extensions(self, timeline: Timeline, features: FeatureSet) -> Timeline:
        """Decorate plain triads with 7th, 6th, sus, dim and aug qualities."""
        events = [self._extend(ev, features) for ev in timeline]
        return timeline.with_events(events)

    def _extend(self, ev: ChordEvent, features: FeatureSet) -> ChordEvent:
        if ev.quality not in (ChordQuality.MAJOR, ChordQuality.MINOR) or ev.is_slash:
            return ev
        if not 0 <= ev.frame_index < features.num_frames:
            return ev

        w = self.config.extension_window
        avg = features.chroma[max(0, ev.frame_index - w):ev.frame_index + w + 1].mean(axis=0)
        s = max(1e-6, self.config.extension_sensitivity)

        def at(step: int) -> float:
            return float(avg[to_pc(ev.root + step)])

        r, m3, M3, p4, d5, p5, a5, M6, b7, M7, M9 = (
            at(0), at(3), at(4), at(5), at(6), at(7), at(8), at(9), at(10), at(11), at(2)
        )
        minor = ev.is_minor
        quality = ev.quality

        if minor and d5 > 0.12 / s and d5 > p5 * 1.3:
            quality = ChordQuality.DIM
        elif not minor and a5 > 0.12 / s and a5 > p5 * 1.3:
            quality = ChordQuality.AUG
        elif not minor and M7 > 0.10 / s and M7 > b7 * 1.5 and M3 > 0.08 and M7 > r * 0.15:
            quality = ChordQuality.MAJ7
        elif not minor and b7 > 0.10 / s and b7 > M7 * 1.2 and M3 > 0.08 and b7 > r * 0.12:
            quality = ChordQuality.DOMINANT7
            if M9 > 0.10 / s and M9 > r * 0.12:
                quality = ChordQuality.NINE
        elif minor and b7 > 0.10 / s and b7 > M7 * 1.2 and m3 > 0.08 and b7 > r * 0.12:
            quality = ChordQuality.M7
        else:
            no_third = M3 <= 0.06 and m3 <= 0.06
            if no_third and p4 > 0.12 / s and p4 > M3 * 1.8 and p4 > m3 * 1.8:
                quality = ChordQuality.SUS4
            elif no_third and M9 > 0.12 / s and M9 > M3 * 1.8 and M9 > m3 * 1.8:
                quality = ChordQuality.SUS2
            elif not minor and M6 > 0.12 / s and M6 > b7 * 1.5 and M6 > M7 * 1.5 and p5 > 0.10:
                quality = ChordQuality.SIX

        if quality is ev.quality:
            return ev
        return ev.evolve(quality=quality)

    def finalize(self, timeline: Timeline, features: FeatureSet, key: Key, bpm: float) -> Timeline:
        """
        Drop short weak chords and snap boundaries to the beat grid.

        A chord is weak when the energy at its first frame is below
        ``weak_energy_ratio`` of the median frame energy.
        """
        cfg = self.config
        if not timeline:
            return timeline
        spb = seconds_per_beat(bpm)
        min_dur = max(cfg.min_duration_seconds, cfg.min_duration_beats * spb)
        median = features.energy_p50

        kept: List[ChordEvent] = []
        for i, ev in enumerate(timeline):
            duration = timeline.duration_of(i)
            energy = features.energy[ev.frame_index] if 0 <= ev.frame_index < features.num_frames else 0.0
            weak = energy < median * cfg.weak_energy_ratio
            if duration < min_dur and kept and (weak or not key.contains(ev.root)):
                continue
            if duration < min_dur * 0.6 and weak:
                continue
            kept.append(ev)

        snapped: List[ChordEvent] = []
        tolerance = cfg.snap_tolerance_beats * spb
        for ev in kept:
            grid = round(ev.start_time / spb) * spb
            t = grid if abs(grid - ev.start_time) <= tolerance else ev.start_time
            if snapped and (snapped[-1].same_chord(ev) or t <= snapped[-1].start_time):
                continue
            snapped.append(ev.evolve(start_time=max(timeline.start, t)))
        return timeline.with_events(snapped)

    def smooth_outliers(self, timeline: Timeline, key: Key) -> Timeline:
        """Replace an isolated, weaker out-of-key chord between two identical in-key chords."""
        events = list(timeline)
        margin = self.config.outlier_margin
        for i in range(1, len(events) - 1):
            prev, curr, nxt = events[i - 1], events[i], events[i + 1]
            if (
                prev.same_chord(nxt)
                and key.contains(prev.root)
                and not key.contains(curr.root)
                and curr.confidence + margin < min(prev.confidence, nxt.confidence)
            ):
                self.emit("outlier_smoothed", time=curr.start_time, old=curr.label, new=prev.label)
                events[i] = prev.evolve(
                    start_time=curr.start_time, frame_index=curr.frame_index, source="smoothing"
                )
        return timeline.with_events(events)

    def apply_style(self, timeline: Timeline, key: Key, style: StyleProfile) -> Timeline:
        """
        Style-dependent filtering.

        easy_pop snaps near-miss roots into the key and smooths outliers,
        colorful_pop only smooths outliers, jazz_like keeps everything.
        With style filters disabled, outlier smoothing always runs.
        """
        if not self.config.enable_style_filters:
            return self.smooth_outliers(timeline, key)
        if style.mode == EASY_POP:
            timeline = enforce_easy_diatonic(timeline, key)
            return self.smooth_outliers(timeline, key)
        if style.mode == COLORFUL_POP:
            return self.smooth_outliers(timeline, key)
        return timeline
