"""Chord decoding with a beam-limited Viterbi search.

States are the chords the theory layer sanctions in the working key.
Emission scores compare each frame's chroma with a binary triad template;
transition scores follow tonal distance. At every frame only the best
``beam_width`` predecessors are expanded, so decoding costs
frames x states x beam instead of frames x states^2.
"""

from typing import List, Optional, Tuple

import numpy as np

from ..analysis.features import FeatureSet
from ..config import DecoderConfig
from ..core import (
    ChordEvent,
    Key,
    Provenance,
    Timeline,
    chromatic_distance,
    circle_of_fifths_distance,
    to_pc,
)
from ..diagnostics import DiagnosticObserver, Emitter
from .theory import ScaleChord, borrowed_chords, diatonic_chords, secondary_dominants


def chord_template(chord: ScaleChord) -> np.ndarray:
    """Binary root/third/fifth template of a chord."""
    template = np.zeros(12)
    for step in chord.quality.intervals[:3]:
        template[to_pc(chord.root + step)] = 1.0
    return template


class ViterbiDecoder:
    """Decode a chord sequence from frame features."""

    def __init__(
        self,
        config: Optional[DecoderConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or DecoderConfig()
        self.emit = Emitter("viterbi", observer)

    def build_states(self, key: Key, conservative: bool = False) -> List[ScaleChord]:
        """
        Chord states for a key.

        Diatonic triads first, then secondary dominants and borrowed
        chords. A (root, quality) pair appears once.
        """
        states = list(diatonic_chords(key))
        extra: List[ScaleChord] = []
        if self.config.use_secondary_dominants:
            extra.extend(secondary_dominants(key))
        if self.config.use_borrowed and not conservative:
            extra.extend(borrowed_chords(key))

        seen = {(s.root, s.quality) for s in states}
        for chord in extra:
            if (chord.root, chord.quality) not in seen:
                seen.add((chord.root, chord.quality))
                states.append(chord)
        return states

    def emission_scores(
        self, features: FeatureSet, states: List[ScaleChord]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Per-frame emission score of every state.

        Returns:
            Tuple of (scores, cosine similarities), both frames x states
        """
        cfg = self.config
        templates = np.array([chord_template(s) for s in states])
        chroma = features.chroma

        norms = np.linalg.norm(chroma, axis=1, keepdims=True) * np.linalg.norm(templates, axis=1)
        with np.errstate(invalid="ignore", divide="ignore"):
            cosine = np.where(norms > 0, (chroma @ templates.T) / norms, 0.0)

        scores = cfg.template_weight * cosine

        bass = features.bass[:, None]
        roots = np.array([s.root for s in states])
        thirds = np.array([to_pc(s.root + s.quality.intervals[1]) for s in states])
        fifths = np.array([to_pc(s.root + s.quality.intervals[2]) for s in states])
        has_bass = bass >= 0
        scores = scores + np.where(has_bass & (bass == roots), cfg.bass_root_bonus, 0.0)
        scores = scores + np.where(has_bass & (bass == thirds), cfg.bass_third_bonus, 0.0)
        scores = scores + np.where(has_bass & (bass == fifths), cfg.bass_fifth_bonus, 0.0)

        in_key = np.array([s.provenance == Provenance.DIATONIC for s in states])
        scores = scores + np.where(in_key, cfg.in_key_bonus, 0.0)

        p70 = features.energy_p70
        energy = features.energy[:, None]
        penalty = np.where(
            energy < p70 * cfg.low_energy_ratio,
            cfg.low_energy_penalty,
            np.where(energy < p70 * cfg.soft_energy_ratio, cfg.soft_energy_penalty, 0.0),
        )
        return scores - penalty, cosine

    def transition_matrix(self, states: List[ScaleChord], key: Key) -> np.ndarray:
        """Score of moving from state i (row) to state j (column)."""
        cfg = self.config
        n = len(states)
        matrix = np.zeros((n, n))
        cadences = {(2, 7), (5, 7), (7, 0)}  # ii-V, IV-V, V-I
        for i, a in enumerate(states):
            for j, b in enumerate(states):
                if i == j:
                    matrix[i, j] = cfg.stay_bonus
                    continue
                score = -(
                    cfg.fifths_weight * circle_of_fifths_distance(a.root, b.root) / 6.0
                    + cfg.chromatic_weight * chromatic_distance(a.root, b.root) / 6.0
                ) - cfg.change_penalty
                if to_pc(b.root - a.root) in (5, 7):
                    score += cfg.fifth_motion_bonus
                if (to_pc(a.root - key.root), to_pc(b.root - key.root)) in cadences:
                    score += cfg.cadence_bonus
                if a.is_minor != b.is_minor:
                    score -= cfg.quality_change_penalty
                if a.provenance != Provenance.DIATONIC and b.provenance != Provenance.DIATONIC:
                    score -= cfg.non_diatonic_pair_penalty
                matrix[i, j] = score
        return matrix

    def best_path(self, emissions: np.ndarray, transitions: np.ndarray, beam_width: int) -> np.ndarray:
        """
        Max-score state path through the emission matrix.

        Args:
            emissions: frames x states scores
            transitions: states x states scores
            beam_width: Predecessors expanded per frame

        Returns:
            State index per frame
        """
        n_frames, n_states = emissions.shape
        if n_frames == 0:
            return np.zeros(0, dtype=np.int64)
        beam_width = max(1, min(beam_width, n_states))

        back = np.zeros((n_frames, n_states), dtype=np.int64)
        score = emissions[0].copy()
        for t in range(1, n_frames):
            beam = np.argsort(-score, kind="stable")[:beam_width]
            candidates = score[beam][:, None] + transitions[beam, :]
            best = np.argmax(candidates, axis=0)
            back[t] = beam[best]
            score = candidates[best, np.arange(n_states)] + emissions[t]

        path = np.zeros(n_frames, dtype=np.int64)
        path[-1] = int(np.argmax(score))
        for t in range(n_frames - 1, 0, -1):
            path[t - 1] = back[t, path[t]]
        return path

    def decode(
        self,
        features: FeatureSet,
        key: Key,
        start_frame: int = 0,
        end_time: Optional[float] = None,
        conservative: bool = False,
    ) -> Timeline:
        """
        Decode the chord timeline.

        Args:
            features: Extracted features
            key: Working key
            start_frame: First frame of the music
            end_time: End of the covered span (defaults to the last frame end)
            conservative: Narrow the beam and drop borrowed states

        Returns:
            Timeline from the music start to ``end_time``
        """
        cfg = self.config
        start_time = features.time_of(start_frame)
        if end_time is None:
            end_time = features.time_of(features.num_frames)

        states = self.build_states(key, conservative)
        beam = cfg.conservative_beam_width if conservative else cfg.beam_width

        emissions, cosine = self.emission_scores(features, states)
        emissions, cosine = emissions[start_frame:], cosine[start_frame:]
        path = self.best_path(emissions, self.transition_matrix(states, key), beam)

        # Frames no state explains are absorbed by the surrounding chord
        confident = emissions.max(axis=1) >= cfg.emission_floor if len(emissions) else np.zeros(0, bool)

        events: List[ChordEvent] = []
        run_state, run_start, run_cos = -1, 0, []

        def close_run():
            if run_state < 0:
                return
            chord = states[run_state]
            events.append(ChordEvent(
                start_time=features.time_of(start_frame + run_start),
                root=chord.root,
                quality=chord.quality,
                confidence=float(np.clip(np.mean(run_cos), 0.0, 1.0)),
                provenance=chord.provenance,
                frame_index=start_frame + run_start,
                source="viterbi",
            ))

        for t, state in enumerate(path):
            if not confident[t]:
                continue
            if state != run_state:
                close_run()
                run_state, run_start, run_cos = int(state), t, []
            run_cos.append(cosine[t, state])
        close_run()

        self.emit(
            "decoded",
            states=len(states),
            beam=beam,
            conservative=conservative,
            events=len(events),
            unassigned_frames=int((~confident).sum()),
        )
        return Timeline(events, start_time, end_time)
