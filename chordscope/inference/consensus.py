"""Consensus merge of the two decoders' timelines."""

from typing import List, Optional

from ..core import ChordEvent, Key, Timeline
from ..diagnostics import DiagnosticObserver, Emitter
from .theory import classify_root, is_borrowed_root


def _active(timeline: Timeline, t: float) -> Optional[ChordEvent]:
    """Last event starting at or before ``t``."""
    active = None
    for ev in timeline:
        if ev.start_time <= t:
            active = ev
        else:
            break
    return active


def _prefer(a: ChordEvent, b: ChordEvent, key: Key) -> ChordEvent:
    """Pick between disagreeing chords: theory category first, then confidence."""
    a_in, b_in = key.contains(a.root), key.contains(b.root)
    if a_in != b_in:
        return a if a_in else b

    a_ok, b_ok = is_borrowed_root(a.root, key), is_borrowed_root(b.root, key)
    if a_ok != b_ok:
        return a if a_ok else b

    return a if a.confidence >= b.confidence else b


class ConsensusMerger:
    """Reconcile a Viterbi timeline with a segmenter timeline.

    The merged timeline only ever contains chords one of the two inputs
    proposed at that time.
    """

    def __init__(self, observer: Optional[DiagnosticObserver] = None):
        self.emit = Emitter("consensus", observer)

    def merge(self, viterbi: Timeline, segmenter: Timeline, key: Key) -> Timeline:
        """
        Merge two timelines over the union of their chord boundaries.

        Between two consecutive boundaries neither input changes, so one
        decision per boundary covers the whole span.

        Args:
            viterbi: Strategy A timeline
            segmenter: Strategy B timeline
            key: Working key

        Returns:
            Merged timeline over the union of both spans
        """
        if not segmenter:
            return viterbi
        if not viterbi:
            return segmenter

        grid = sorted({ev.start_time for ev in list(viterbi) + list(segmenter)})

        merged: List[ChordEvent] = []
        agreed = disagreed = 0
        for t in grid:
            a = _active(viterbi, t)
            b = _active(segmenter, t)
            if a is None and b is None:
                continue

            if a is None or b is None:
                chosen = a or b
            elif a.root == b.root:
                # Agreement: the segmenter carries quality and bass detail
                agreed += 1
                chosen = b if b.confidence >= a.confidence else b.evolve(confidence=a.confidence)
                chosen = chosen.evolve(provenance=classify_root(chosen.root, key))
            else:
                disagreed += 1
                chosen = _prefer(b, a, key)

            if merged and merged[-1].same_chord(chosen):
                continue
            merged.append(chosen.evolve(start_time=t))

        start = min(viterbi.start, segmenter.start)
        end = max(viterbi.end, segmenter.end)
        self.emit("merged", agreed=agreed, disagreed=disagreed, events=len(merged))
        return Timeline(merged, start, end)
