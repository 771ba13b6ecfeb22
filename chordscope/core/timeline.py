"""Timeline - an ordered, gap-free partition of a clip into chord events."""

from bisect import bisect_right
from typing import Iterable, Iterator, List, Optional, Sequence

from .chord import ChordEvent


class Timeline:
    """Immutable sequence of ChordEvents covering ``[start, end)``.

    Each event lasts until the next one starts; the last one lasts until
    ``end``. Refinement passes build a new Timeline instead of editing one.
    """

    __slots__ = ("_events", "_start", "_end")

    def __init__(
        self,
        events: Iterable[ChordEvent] = (),
        start: float = 0.0,
        end: Optional[float] = None,
    ):
        ordered = sorted(events, key=lambda ev: ev.start_time)
        if end is None:
            end = ordered[-1].start_time if ordered else start

        kept: List[ChordEvent] = []
        for ev in ordered:
            if ev.start_time >= end:
                break
            if ev.start_time < start:
                ev = ev.evolve(start_time=start)
            if kept and ev.start_time <= kept[-1].start_time:
                # Two events claim the same instant: the later-listed one wins
                kept[-1] = ev.evolve(start_time=kept[-1].start_time)
                continue
            kept.append(ev)

        # The first event always opens the covered span
        if kept and kept[0].start_time > start:
            kept[0] = kept[0].evolve(start_time=start)

        self._events = tuple(kept)
        self._start = float(start)
        self._end = float(end)

    @property
    def events(self) -> Sequence[ChordEvent]:
        return self._events

    @property
    def start(self) -> float:
        return self._start

    @property
    def end(self) -> float:
        return self._end

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ChordEvent]:
        return iter(self._events)

    def __getitem__(self, index):
        return self._events[index]

    def __bool__(self) -> bool:
        return bool(self._events)

    def __repr__(self) -> str:
        labels = " ".join(ev.label for ev in self._events[:8])
        more = " ..." if len(self._events) > 8 else ""
        return f"Timeline([{labels}{more}], {self._start:.2f}-{self._end:.2f}s)"

    def end_of(self, index: int) -> float:
        """End time of the event at ``index``."""
        if index + 1 < len(self._events):
            return self._events[index + 1].start_time
        return self._end

    def duration_of(self, index: int) -> float:
        return self.end_of(index) - self._events[index].start_time

    def event_at(self, time: float) -> Optional[ChordEvent]:
        """Get the chord sounding at ``time``, or None outside the span."""
        if not self._events or time < self._start or time >= self._end:
            return None
        starts = [ev.start_time for ev in self._events]
        return self._events[bisect_right(starts, time) - 1]

    def with_events(self, events: Iterable[ChordEvent]) -> "Timeline":
        """New Timeline over the same span."""
        return Timeline(events, self._start, self._end)

    def collapsed(self) -> "Timeline":
        """Merge consecutive events that name the same chord."""
        merged: List[ChordEvent] = []
        for ev in self._events:
            if merged and merged[-1].same_chord(ev):
                prev = merged[-1]
                if ev.confidence > prev.confidence:
                    merged[-1] = prev.evolve(confidence=ev.confidence)
                continue
            merged.append(ev)
        return self.with_events(merged)

    @property
    def roots(self) -> List[int]:
        return [ev.root for ev in self._events]

    @property
    def labels(self) -> List[str]:
        return [ev.label for ev in self._events]

    def is_partition(self) -> bool:
        """Check ordering and coverage of ``[start, end)``."""
        if not self._events:
            return True
        if abs(self._events[0].start_time - self._start) > 1e-9:
            return False
        for prev, nxt in zip(self._events, self._events[1:]):
            if not prev.start_time < nxt.start_time:
                return False
        return self._events[-1].start_time < self._end
