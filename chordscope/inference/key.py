"""Key detection - Identify the tonal center of a clip.

The tonic is decided by a vote between four independent sources:
- a bass histogram weighted towards the opening and closing, plus bass cadences
- a Krumhansl-Schmuckler profile match over the energetic frames
- the first clearly voiced triad after the music starts
- the pitch class that is most often the strongest chroma bin

The mode is then decided from the third (and sixth/seventh) above that
tonic alone.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..analysis.features import FeatureSet
from ..config import KeyConfig
from ..core import Key, pc_name, to_pc
from ..diagnostics import DiagnosticObserver, Emitter


@dataclass
class SourceVote:
    """One tonic vote."""
    source: str  # "bass", "profile", "first_chord", "dominant"
    root: int
    confidence: float  # 0.0 - 1.0 (or the triad score for the first chord)
    votes: int = 0


@dataclass
class TriadMatch:
    """Best triad found in a single chroma frame."""
    root: int
    minor: bool
    score: float
    frame: int = -1


@dataclass
class TonicEstimate:
    """Result of the tonic vote."""
    root: int
    confidence: float  # 0.0 - 1.0
    votes: np.ndarray = field(default_factory=lambda: np.zeros(12))
    sources: List[SourceVote] = field(default_factory=list)
    first_chord: Optional[TriadMatch] = None
    fourth_guard_applied: bool = False

    @property
    def agreeing(self) -> int:
        return sum(1 for s in self.sources if s.root == self.root)


@dataclass
class ModeEstimate:
    """Result of the third-based mode decision."""
    minor: bool
    confidence: float  # 0.0 - 1.0
    minor_score: float = 0.0
    major_score: float = 0.0
    third_ratio: float = 1.0


@dataclass
class BassRun:
    """A run of frames sharing one bass note."""
    bass: int
    start_frame: int
    end_frame: int


class KeyDetector:
    """Detect the key of a clip from its features.

    Features:
    - Four-source tonic vote with a guard against mistaking I for IV
    - Mode from third, sixth and seventh evidence above the tonic
    - Every decision reported as a diagnostic event
    """

    # Krumhansl-Schmuckler key profiles (cognitive-based)
    KRUMHANSL_MAJOR = np.array(
        [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
    )
    KRUMHANSL_MINOR = np.array(
        [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
    )

    def __init__(
        self,
        config: Optional[KeyConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or KeyConfig()
        self.emit = Emitter("key", observer)

    def detect(self, features: FeatureSet, start_frame: int = 0) -> Key:
        """
        Detect the key.

        Args:
            features: Extracted features
            start_frame: First frame of the music

        Returns:
            Key whose confidence is the lower of tonic and mode confidence
        """
        tonic = self.detect_tonic(features, start_frame)
        mode = self.detect_mode(features, tonic.root, start_frame)
        key = Key(tonic.root, mode.minor, min(tonic.confidence, mode.confidence))
        self.emit(
            "key_detected",
            key=key.name,
            tonic_confidence=round(tonic.confidence, 3),
            mode_confidence=round(mode.confidence, 3),
        )
        return key

    # -- tonic vote -----------------------------------------------------

    def detect_tonic(self, features: FeatureSet, start_frame: int = 0) -> TonicEstimate:
        """
        Vote for the tonic pitch class.

        Returns:
            TonicEstimate with the vote breakdown
        """
        cfg = self.config
        votes = np.zeros(12, dtype=np.int64)
        sources: List[SourceVote] = []

        bass = self.bass_tonic(features, start_frame)
        if bass is not None:
            bass.votes = self._bass_votes(bass.confidence)
            votes[bass.root] += bass.votes
            sources.append(bass)

        profile_root, _, profile_conf = self.profile_tonic(features, start_frame)
        profile = SourceVote(
            "profile", profile_root, profile_conf,
            cfg.ks_votes[0] if profile_conf >= cfg.ks_strong_confidence else cfg.ks_votes[1],
        )
        votes[profile.root] += profile.votes
        sources.append(profile)

        first = self.first_strong_chord(features, start_frame)
        if first is not None and first.score >= cfg.first_chord_min_score:
            strong, weak, conflicting = cfg.first_chord_votes
            if (
                bass is not None
                and bass.confidence >= cfg.bass_conflict_confidence
                and bass.root != first.root
            ):
                n = conflicting
            else:
                n = strong if first.score >= cfg.first_chord_strong_score else weak
            votes[first.root] += n
            sources.append(SourceVote("first_chord", first.root, first.score, n))
        else:
            first = None

        dominant = self.dominant_pitch_class(features, start_frame)
        if dominant is not None:
            dominant.votes = cfg.dominant_votes
            votes[dominant.root] += dominant.votes
            sources.append(dominant)

        best = int(np.argmax(votes))
        best_votes = int(votes[best])

        # A first chord a fourth below the winner is usually I, not V of the winner
        guard = False
        if first is not None and best != first.root and to_pc(best - first.root) == 5:
            first_votes = int(votes[first.root])
            if (
                first_votes >= best_votes - cfg.fourth_trap_vote_slack
                or first.score >= cfg.fourth_trap_score
            ):
                self.emit("fourth_guard", rejected=pc_name(best), tonic=pc_name(first.root))
                best = first.root
                guard = True

        agreeing = sum(1 for s in sources if s.root == best)
        confidence = 50 + 12 * agreeing
        if first is not None and first.root == best:
            confidence += 10
        confidence = min(98, max(55, confidence)) / 100.0

        self.emit(
            "tonic_votes",
            votes={pc_name(pc): int(v) for pc, v in enumerate(votes) if v > 0},
            sources={s.source: pc_name(s.root) for s in sources},
            winner=pc_name(best),
            agreeing=agreeing,
        )

        return TonicEstimate(
            root=best,
            confidence=confidence,
            votes=votes,
            sources=sources,
            first_chord=first,
            fourth_guard_applied=guard,
        )

    def _bass_votes(self, confidence: float) -> int:
        for threshold, n in self.config.bass_vote_tiers:
            if confidence >= threshold:
                return n
        return self.config.bass_vote_floor

    def bass_tonic(self, features: FeatureSet, start_frame: int = 0) -> Optional[SourceVote]:
        """
        Tonic suggested by the bass line.

        Returns:
            SourceVote, or None when the clip has no bass evidence
        """
        cfg = self.config
        n = features.num_frames
        p70 = features.energy_p70
        if p70 <= 0:
            return None

        opening_end = min(start_frame + int(cfg.opening_seconds / features.sec_per_frame), n)
        closing_start = max(0, n - int(cfg.closing_seconds / features.sec_per_frame))

        hist = np.zeros(12)
        for i in range(start_frame, n):
            bp = int(features.bass[i])
            if bp < 0 or features.energy[i] < p70 * cfg.bass_energy_ratio:
                continue
            w = features.energy[i] / p70
            if i < opening_end:
                w *= 5.0 if i == start_frame else 2.0
            if i >= closing_start:
                w *= 3.0 if i >= n - 5 else 1.5
            hist[bp] += w

        runs = self.bass_runs(features, start_frame)
        if hist.sum() <= 0 and not runs:
            return None

        cadences = self.cadence_scores(runs)
        total = hist.sum() or 1.0
        scores = np.zeros(12)
        for tonic in range(12):
            scores[tonic] = (
                hist[tonic] / total * 50
                + cadences[tonic] * 2
                + self._count_transitions(runs, to_pc(tonic + 7), tonic) * 12
                + self._count_transitions(runs, to_pc(tonic + 5), tonic) * 8
            )

        order = np.argsort(-scores, kind="stable")
        best, second = int(order[0]), int(order[1])
        confidence = min(98.0, max(50.0, 50 + (scores[best] - scores[second]) * 1.5)) / 100.0
        return SourceVote("bass", best, confidence)

    def bass_runs(self, features: FeatureSet, start_frame: int = 0) -> List[BassRun]:
        """Collapse the energetic bass line into runs of equal notes."""
        threshold = features.energy_p70 * self.config.bass_timeline_energy_ratio
        runs: List[BassRun] = []
        current, start = -1, start_frame
        for i in range(start_frame, features.num_frames):
            if features.energy[i] < threshold:
                continue
            bp = int(features.bass[i])
            if bp >= 0 and bp != current:
                if current >= 0:
                    runs.append(BassRun(current, start, i))
                current, start = bp, i
        if current >= 0:
            runs.append(BassRun(current, start, features.num_frames))
        return runs

    @staticmethod
    def cadence_scores(runs: List[BassRun]) -> np.ndarray:
        """Credit each candidate tonic for cadences in the bass line."""
        scores = np.zeros(12)
        notes = [r.bass for r in runs]
        for i in range(len(notes) - 1):
            curr, nxt = notes[i], notes[i + 1]
            step = to_pc(curr - nxt)
            if step == 7:
                scores[nxt] += 10  # V-I
            elif step == 5:
                scores[nxt] += 8  # IV-I
            elif step == 11:
                scores[nxt] += 7  # vii-I

            if i < len(notes) - 2:
                third = notes[i + 2]
                if to_pc(curr - third) == 2 and to_pc(nxt - third) == 7:
                    scores[third] += 15  # ii-V-I
                if to_pc(curr - third) == 5 and to_pc(nxt - third) == 7:
                    scores[third] += 20  # IV-V-I
                if to_pc(nxt - curr) == 5 and to_pc(third - curr) == 7:
                    scores[curr] += 12  # I-IV-V names its first chord
        return scores

    @staticmethod
    def _count_transitions(runs: List[BassRun], from_pc: int, to_pc_: int) -> int:
        return sum(
            1 for a, b in zip(runs, runs[1:])
            if a.bass == from_pc and b.bass == to_pc_
        )

    def profile_tonic(
        self, features: FeatureSet, start_frame: int = 0
    ) -> Tuple[int, bool, float]:
        """
        Krumhansl-Schmuckler match over the energetic frames.

        Returns:
            Tuple of (root, minor, confidence 0.0 - 1.0)
        """
        energy = features.energy[start_frame:]
        chroma = features.chroma[start_frame:]
        mask = energy >= features.energy_p70 * self.config.ks_energy_ratio
        local = np.zeros(12)
        if mask.any() and energy[mask].sum() > 0:
            local = (chroma[mask] * energy[mask, None]).sum(axis=0) / energy[mask].sum()
        return self.match_profiles(local)

    def match_profiles(self, pitch_classes: np.ndarray) -> Tuple[int, bool, float]:
        """Best major/minor profile by dot product (ties keep the lower root, major first)."""
        best_root, best_minor, best_score = 0, False, -np.inf
        for root in range(12):
            rotated = np.roll(pitch_classes, -root)
            for minor, profile in ((False, self.KRUMHANSL_MAJOR), (True, self.KRUMHANSL_MINOR)):
                score = float(np.dot(rotated, profile))
                if score > best_score:
                    best_root, best_minor, best_score = root, minor, score
        confidence = min(95.0, max(40.0, best_score * 12)) / 100.0
        return best_root, best_minor, confidence

    def detect_triad(self, chroma: np.ndarray, bass: int = -1) -> Optional[TriadMatch]:
        """
        Strongest major or minor triad in one chroma frame.

        Every chord tone must clear ``triad_min_strength``; the opposite
        third counts against the chord twice.
        """
        floor = self.config.triad_min_strength
        best: Optional[TriadMatch] = None
        for root in range(12):
            r = chroma[root]
            major3 = chroma[to_pc(root + 4)]
            minor3 = chroma[to_pc(root + 3)]
            fifth = chroma[to_pc(root + 7)]
            if r <= floor or fifth <= floor:
                continue
            for minor, third, wrong in ((False, major3, minor3), (True, minor3, major3)):
                if third <= floor:
                    continue
                score = r * 1.5 + third + fifth - wrong * 2.0
                if bass >= 0:
                    if bass == root:
                        score += 0.3
                    elif bass == to_pc(root + (3 if minor else 4)):
                        score += 0.15
                    elif bass == to_pc(root + 7):
                        score += 0.10
                if best is None or score > best.score:
                    best = TriadMatch(root, minor, float(score))
        if best is None or best.score <= self.config.triad_min_score:
            return None
        return best

    def first_strong_chord(self, features: FeatureSet, start_frame: int = 0) -> Optional[TriadMatch]:
        """
        The chord the song opens on.

        Scans the first energetic frames after the music start and returns
        the earliest triad whose root appears most often among them.
        """
        cfg = self.config
        threshold = features.energy_p70 * cfg.first_chord_energy_ratio
        matches: List[TriadMatch] = []
        checked = 0
        for i in range(start_frame, features.num_frames):
            if checked >= cfg.first_chord_frames:
                break
            if features.energy[i] < threshold:
                continue
            checked += 1
            triad = self.detect_triad(features.chroma[i], int(features.bass[i]))
            if triad is not None:
                triad.frame = i
                matches.append(triad)

        if not matches:
            return None

        counts = np.bincount([m.root for m in matches], minlength=12)
        winner = int(np.argmax(counts))
        return next(m for m in matches if m.root == winner)

    def dominant_pitch_class(self, features: FeatureSet, start_frame: int = 0) -> Optional[SourceVote]:
        """Pitch class most often strongest in energetic frames."""
        cfg = self.config
        chroma = features.chroma[start_frame:]
        energy = features.energy[start_frame:]
        mask = energy >= features.energy_p70 * cfg.dominant_energy_ratio
        if not mask.any():
            return None
        peaks = chroma[mask].max(axis=1)
        roots = chroma[mask].argmax(axis=1)[peaks > cfg.dominant_min_peak]
        if len(roots) == 0:
            return None
        counts = np.bincount(roots, minlength=12)
        best = int(np.argmax(counts))
        if counts[best] <= cfg.dominant_min_frames:
            return None
        return SourceVote("dominant", best, float(counts[best] / len(roots)))

    # -- mode -----------------------------------------------------------

    def detect_mode(self, features: FeatureSet, tonic: int, start_frame: int = 0) -> ModeEstimate:
        """
        Decide major vs minor from the scale degrees above the tonic.

        The third carries most weight; the sixth and seventh break ties.
        """
        cfg = self.config
        w_third, w_sixth, w_seventh, w_abs = cfg.mode_weights
        p70 = features.energy_p70 or 1.0

        sums: Dict[int, float] = {i: 0.0 for i in (3, 4, 8, 9, 10, 11)}
        total_w = 0.0
        for i in range(start_frame, features.num_frames):
            if features.energy[i] < features.energy_p50 * cfg.mode_energy_ratio:
                continue
            w = min(3.0, features.energy[i] / p70)
            c = features.chroma[i]
            arpeggio = 1.5 if c[tonic] > 0.15 else 1.0
            for step in sums:
                sums[step] += c[to_pc(tonic + step)] * w * (arpeggio if step in (3, 4) else 1.0)
            total_w += w
        if total_w > 0:
            sums = {k: v / total_w for k, v in sums.items()}

        eps = 1e-4
        third_ratio = (sums[3] + eps) / (sums[4] + eps)
        sixth_ratio = (sums[8] + eps) / (sums[9] + eps)
        seventh_ratio = (sums[10] + eps) / (sums[11] + eps)

        minor_score = 0.0
        major_score = 0.0

        def weigh(ratio: float, margin: float, weight: float, cap: float):
            nonlocal minor_score, major_score
            if ratio > 1 + margin:
                minor_score += weight * min(cap, ratio - 1)
            elif ratio < 1 - margin:
                major_score += weight * min(cap, 1 / ratio - 1)

        weigh(third_ratio, cfg.third_margin, w_third, 3.0)
        weigh(sixth_ratio, cfg.upper_degree_margin, w_sixth, 2.0)
        weigh(seventh_ratio, cfg.upper_degree_margin, w_seventh, 2.0)

        if sums[3] > cfg.mode_third_floor and sums[3] > sums[4]:
            minor_score += w_abs
        if sums[4] > cfg.mode_third_floor and sums[4] > sums[3]:
            major_score += w_abs

        confidence = min(100.0, max(60.0, 60 + abs(minor_score - major_score))) / 100.0
        self.emit(
            "mode",
            minor_score=round(minor_score, 2),
            major_score=round(major_score, 2),
            third_ratio=round(third_ratio, 3),
        )
        return ModeEstimate(
            minor=bool(minor_score > major_score),
            confidence=float(confidence),
            minor_score=float(minor_score),
            major_score=float(major_score),
            third_ratio=float(third_ratio),
        )
