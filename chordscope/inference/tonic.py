"""Tonic re-validation from the resolved chord sequence."""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..config import TonicConfig
from ..core import Key, Timeline, to_pc
from ..diagnostics import DiagnosticObserver, Emitter


class KeyChangeGuard:
    """Request-scoped limit on how often re-validation may replace the key."""

    def __init__(self, max_changes: int = 1):
        self.max_changes = max_changes
        self.changes = 0

    def allows(self) -> bool:
        return self.changes < self.max_changes

    def record(self) -> None:
        self.changes += 1


@dataclass
class TonicCandidate:
    root: int
    minor: bool
    score: float
    fit: float


@dataclass
class ChordEvidence:
    """Per-root aggregates of a timeline."""
    durations: np.ndarray
    counts: np.ndarray
    cadences: np.ndarray
    opening_root: int
    closing_root: int
    dominant_root: int


class TonicValidator:
    """Score every key against the chords that were actually decoded."""

    def __init__(
        self,
        config: Optional[TonicConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
    ):
        self.config = config or TonicConfig()
        self.emit = Emitter("tonic", observer)

    def evidence(self, timeline: Timeline) -> ChordEvidence:
        """Durations, counts and cadence credit per root."""
        cfg = self.config
        durations = np.zeros(12)
        counts = np.zeros(12)
        for i, ev in enumerate(timeline):
            durations[ev.root] += timeline.duration_of(i)
            counts[ev.root] += 1

        cadences = np.zeros(12)
        roots = timeline.roots
        for i in range(len(roots) - 1):
            step = to_pc(roots[i + 1] - roots[i])
            if step == 5:
                cadences[roots[i + 1]] += cfg.fourth_cadence
            elif step == 7:
                cadences[roots[i + 1]] += cfg.fifth_cadence
            if i + 2 < len(roots):
                step2 = to_pc(roots[i + 2] - roots[i + 1])
                if step == 5 and step2 == 5:
                    cadences[roots[i + 2]] += cfg.two_five_one
                if step == 2 and step2 == 5:
                    cadences[roots[i + 2]] += cfg.four_five_one

        return ChordEvidence(
            durations=durations,
            counts=counts,
            cadences=cadences,
            opening_root=roots[0],
            closing_root=roots[-1],
            dominant_root=int(np.argmax(durations)),
        )

    def candidates(self, timeline: Timeline, evidence: ChordEvidence) -> List[TonicCandidate]:
        """Keys that fit enough of the chords, best first."""
        cfg = self.config
        result = []
        for root in range(12):
            for minor in (False, True):
                key = Key(root, minor)
                fit = sum(1 for ev in timeline if key.contains(ev.root)) / len(timeline)
                if fit < cfg.min_fit:
                    continue
                score = (
                    evidence.durations[root] * cfg.duration_weight
                    + evidence.counts[root] * cfg.count_weight
                    + evidence.cadences[root]
                )
                if evidence.opening_root == root:
                    score += cfg.opening_bonus
                if evidence.closing_root == root:
                    score += cfg.closing_bonus
                if evidence.dominant_root == root:
                    score += cfg.dominant_root_bonus
                result.append(TonicCandidate(root, minor, float(score), fit))
        result.sort(key=lambda c: -c.score)
        return result

    def subdominant_guard(
        self,
        candidate: TonicCandidate,
        initial_score: float,
        key: Key,
        opening_root: Optional[int],
    ) -> bool:
        """
        Whether a move from a major tonic to its own subdominant is allowed.

        Songs that open on the current tonic need overwhelming evidence.

        Returns:
            True when the move is allowed (or is not an I to IV move at all)
        """
        cfg = self.config
        if key.minor or to_pc(candidate.root - key.root) != 5:
            return True
        gain = candidate.score - initial_score
        if opening_root == key.root:
            return gain >= cfg.subdominant_anchored_gain and candidate.fit >= cfg.subdominant_anchored_fit
        return gain >= cfg.subdominant_gain and candidate.fit >= cfg.subdominant_fit

    def validate(self, timeline: Timeline, key: Key, guard: Optional[KeyChangeGuard] = None) -> Key:
        """
        Re-check the key against the decoded chords.

        Args:
            timeline: Refined timeline
            key: Current working key
            guard: Change limit shared across one analysis

        Returns:
            The current key, or a replacement that beats it by a clear margin
        """
        cfg = self.config
        if len(timeline) < cfg.min_events:
            return key

        evidence = self.evidence(timeline)
        candidates = self.candidates(timeline, evidence)
        if not candidates:
            return key

        best = candidates[0]
        initial = next((c for c in candidates if c.root == key.root and c.minor == key.minor), None)
        initial_score = initial.score if initial else 0.0

        self.emit(
            "candidates",
            best=Key(best.root, best.minor).name,
            best_score=round(best.score, 1),
            initial_score=round(initial_score, 1),
        )

        if not self.subdominant_guard(best, initial_score, key, evidence.opening_root):
            self.emit("subdominant_blocked", key=key.name, candidate=Key(best.root, best.minor).name)
            return key

        opening = next((c for c in candidates if c.root == evidence.opening_root), None)
        if opening is not None and opening.score >= best.score - cfg.opening_preference:
            best = opening

        if best.root == key.root and best.minor == key.minor:
            return key
        if best.score <= initial_score + cfg.override_margin:
            return key

        if guard is not None:
            if not guard.allows():
                self.emit("change_blocked", key=key.name, candidate=Key(best.root, best.minor).name)
                return key
            guard.record()

        new_key = Key(best.root, best.minor, min(0.95, key.confidence + 0.1))
        self.emit("key_changed", old=key.name, new=new_key.name)
        return new_key
