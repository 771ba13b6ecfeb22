"""Bass-anchored segmentation - the second chord decoder.

Chord boundaries are only considered near beats, where the chroma jumps
or the bass moves. Each segment's chord is picked from theory-ordered
candidates built around its bass note and scored against the segment's
average chroma.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..analysis.features import FeatureSet
from ..analysis.profile import SongProfile
from ..analysis.tempo import beat_grid, seconds_per_beat
from ..config import SegmenterConfig
from ..core import ChordCandidate, ChordEvent, ChordQuality, Key, Provenance, Timeline, to_pc
from ..diagnostics import DiagnosticObserver, Emitter
from .theory import borrowed_chords, diatonic_chords, is_reasonable_chromatic, secondary_dominants


@dataclass
class Segment:
    """A committed run of frames sharing one bass note."""
    start_frame: int
    end_frame: int
    bass: int

    @property
    def length(self) -> int:
        return self.end_frame - self.start_frame


def chroma_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Half the L1 distance: 0 for identical, 1 for disjoint distributions."""
    return float(np.abs(np.asarray(a) - np.asarray(b)).sum() / 2.0)


class BassSegmenter:
    """Segment the clip on bass movement and name each segment's chord."""

    def __init__(
        self,
        config: Optional[SegmenterConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or SegmenterConfig()
        self.emit = Emitter("segmenter", observer)

    def change_candidates(self, features: FeatureSet, bpm: float, start_frame: int = 0) -> List[int]:
        """
        Frames where a chord may change.

        A frame qualifies when it lies within ``beat_tolerance_frames`` of
        a beat and shows strong spectral flux or a new bass note. The
        start frame is always included.
        """
        n = features.num_frames
        spf = features.sec_per_frame
        tol = self.config.beat_tolerance_frames
        candidates = {start_frame}
        for beat in beat_grid(n * spf, bpm):
            center = int(round(beat / spf))
            for i in range(center - tol, center + tol + 1):
                if i <= start_frame or i >= n:
                    continue
                strong_flux = features.flux[i] >= features.flux_p80
                bass_change = features.bass[i] >= 0 and features.bass[i - 1] != features.bass[i]
                if strong_flux or bass_change:
                    candidates.add(i)
        return sorted(candidates)

    def min_duration(self, bpm: float, profile: Optional[SongProfile] = None) -> float:
        """Tempo-scaled minimum segment duration in seconds."""
        cfg = self.config
        base = max(cfg.min_duration_seconds, cfg.min_duration_beats * seconds_per_beat(bpm))
        return base * (profile.min_duration_multiplier if profile else 1.0)

    def segment(
        self,
        features: FeatureSet,
        bpm: float,
        start_frame: int = 0,
        profile: Optional[SongProfile] = None,
    ) -> List[Segment]:
        """
        Split the clip into bass segments.

        A bass change commits the running segment once it is long enough
        or the harmony clearly moved; other changes are treated as
        passing notes.
        """
        cfg = self.config
        spf = features.sec_per_frame
        min_dur = self.min_duration(bpm, profile)
        change_threshold = profile.chroma_change_threshold if profile else cfg.chroma_change_threshold
        energy_floor = features.energy_p70 * cfg.energy_ratio

        segments: List[Segment] = []
        current_bass, current_start, current_chroma = -1, start_frame, None

        for i in self.change_candidates(features, bpm, start_frame):
            bp = int(features.bass[i])
            if bp < 0 or features.energy[i] < energy_floor:
                continue
            if current_bass < 0:
                current_bass, current_start = bp, i
                current_chroma = features.avg_chroma(i, i + 3)
                continue
            if bp == current_bass:
                continue

            duration = (i - current_start) * spf
            change = chroma_distance(current_chroma, features.chroma[i])
            if duration >= min_dur or change >= change_threshold:
                segments.append(Segment(current_start, i, current_bass))
                current_bass, current_start = bp, i
                current_chroma = features.avg_chroma(i, i + 3)

        if current_bass >= 0 and features.num_frames > current_start:
            segments.append(Segment(current_start, features.num_frames, current_bass))
        return segments

    def candidates_for_bass(self, bass: int, key: Key) -> List[ChordCandidate]:
        """
        Theory-ordered chord candidates for a bass note.

        Returns:
            Candidates sorted by priority, highest first
        """
        prio = self.config.priorities
        result: List[ChordCandidate] = []

        def add(chord, kind: str, provenance: Provenance, inversion: bool):
            result.append(ChordCandidate(
                root=chord.root,
                quality=chord.quality,
                provenance=provenance,
                bass_pitch_class=bass if inversion else -1,
                priority=prio[kind],
            ))

        for chord in diatonic_chords(key):
            if chord.root == bass:
                add(chord, "diatonic_root", Provenance.DIATONIC, False)
            elif to_pc(chord.root + chord.quality.intervals[1]) == bass:
                add(chord, "diatonic_inv1", Provenance.DIATONIC, True)
            elif to_pc(chord.root + chord.quality.intervals[2]) == bass:
                add(chord, "diatonic_inv2", Provenance.DIATONIC, True)

        for chord in secondary_dominants(key):
            if chord.root == bass:
                add(chord, "secondary_dominant", Provenance.SECONDARY_DOMINANT, False)
            elif to_pc(chord.root + 4) == bass:
                add(chord, "secondary_dominant_inv1", Provenance.SECONDARY_DOMINANT, True)

        for chord in borrowed_chords(key):
            mediant = not key.minor and chord.numeral == "III"
            if chord.root == bass:
                add(chord, "major_mediant" if mediant else "borrowed", Provenance.BORROWED, False)
            elif to_pc(chord.root + chord.quality.intervals[1]) == bass:
                add(chord, "major_mediant_inv1" if mediant else "borrowed_inv1", Provenance.BORROWED, True)

        result.sort(key=lambda c: -c.priority)
        return result

    def score_candidate(
        self, avg: np.ndarray, root: int, minor: bool, bass: int, in_scale: bool,
        quality: Optional[ChordQuality] = None,
    ) -> float:
        """
        Fit of a chord to a segment's average chroma.

        The third actually present decides the scoring; a candidate whose
        assumed quality contradicts it is penalized.
        """
        ratio = self.config.third_detect_ratio
        root_strength = avg[root]
        if root_strength < 0.05:
            return 0.0

        m3, M3 = to_pc(root + 3), to_pc(root + 4)
        fifth_step = quality.intervals[2] if quality is not None else 7
        fifth = to_pc(root + fifth_step)

        if avg[m3] > avg[M3] * ratio:
            third, wrong, heard_minor = m3, M3, True
        elif avg[M3] > avg[m3] * ratio:
            third, wrong, heard_minor = M3, m3, False
        else:
            third, wrong, heard_minor = (m3, M3, True) if minor else (M3, m3, False)

        score = root_strength * 40 + avg[third] * 30 + avg[fifth] * 20 - avg[wrong] * 25
        if minor != heard_minor:
            score -= 15

        if bass == root:
            score += 15
        elif bass == third:
            score += 10
        elif bass == fifth:
            score += 8

        if in_scale:
            score += 8
        return float(score)

    def choose_chord(self, features: FeatureSet, segment: Segment, key: Key) -> Optional[ChordCandidate]:
        """
        Best chord for a segment, or None when nothing fits.

        The returned candidate's score is the raw fit plus half its priority.
        """
        cfg = self.config
        avg = features.avg_chroma(segment.start_frame, segment.end_frame)
        if avg.sum() <= 0:
            return None

        scored: List[ChordCandidate] = []
        for cand in self.candidates_for_bass(segment.bass, key):
            fit = self.score_candidate(
                avg, cand.root, cand.quality.is_minor, segment.bass,
                cand.provenance == Provenance.DIATONIC, cand.quality,
            )
            if fit > 0:
                cand.score = fit + cand.priority * 0.5
                scored.append(cand)

        if not scored:
            # Unexplained chromatic chord on the bass note, only when very clear
            for minor in (False, True):
                fit = self.score_candidate(avg, segment.bass, minor, segment.bass, False)
                if fit > cfg.chromatic_min_score and (
                    is_reasonable_chromatic(segment.bass, key) or fit > cfg.chromatic_strong_score
                ):
                    scored.append(ChordCandidate(
                        root=segment.bass,
                        quality=ChordQuality.triad_for(minor),
                        provenance=Provenance.CHROMATIC,
                        score=fit - cfg.chromatic_penalty,
                        priority=cfg.priorities["chromatic"],
                    ))

        if not scored:
            return None

        best = max(scored, key=lambda c: c.score)

        # Trust the third that is actually sounding
        m3 = avg[to_pc(best.root + 3)]
        M3 = avg[to_pc(best.root + 4)]
        mediant = best.provenance == Provenance.BORROWED and best.root == to_pc(key.root + 4) and not key.minor
        if mediant:
            best.quality = ChordQuality.MAJOR
        elif m3 > M3 * cfg.quality_fix_ratio and not best.quality.is_minor:
            best.quality = ChordQuality.MINOR
        elif M3 > m3 * cfg.quality_fix_ratio and best.quality.is_minor:
            best.quality = ChordQuality.MAJOR
        return best

    def decode(
        self,
        features: FeatureSet,
        key: Key,
        bpm: float,
        start_frame: int = 0,
        end_time: Optional[float] = None,
        profile: Optional[SongProfile] = None,
    ) -> Timeline:
        """
        Decode the chord timeline from bass segments.

        Args:
            features: Extracted features
            key: Working key
            bpm: Tempo used for the beat grid and minimum duration
            start_frame: First frame of the music
            end_time: End of the covered span
            profile: Song profile scaling the thresholds

        Returns:
            Timeline from the music start to ``end_time``
        """
        spf = features.sec_per_frame
        if end_time is None:
            end_time = features.time_of(features.num_frames)
        min_dur = self.min_duration(bpm, profile)

        events: List[ChordEvent] = []
        dropped = 0
        for seg in self.segment(features, bpm, start_frame, profile):
            chord = self.choose_chord(features, seg, key)
            if chord is None:
                dropped += 1
                continue
            raw = chord.score - chord.priority * 0.5
            if seg.length * spf < min_dur and raw < self.config.short_keep_score:
                # Too short and not convincing: the previous chord carries on
                dropped += 1
                continue
            events.append(ChordEvent(
                start_time=features.time_of(seg.start_frame),
                root=chord.root,
                quality=chord.quality,
                bass_pitch_class=chord.bass_pitch_class,
                confidence=min(100.0, max(0.0, chord.score)) / 100.0,
                provenance=chord.provenance,
                frame_index=seg.start_frame,
                source="segmenter",
            ))

        self.emit("decoded", events=len(events), dropped=dropped, min_duration=round(min_dur, 3))
        return Timeline(events, features.time_of(start_frame), end_time)
