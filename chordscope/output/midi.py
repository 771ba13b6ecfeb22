"""MIDI export of a chord timeline."""

import pretty_midi
from pathlib import Path

from ..core import Timeline, to_pc


class ChordMIDIExporter:
    """Render each chord as a block chord, with an optional bass note."""

    def __init__(
        self,
        tempo: float = 120.0,
        instrument_name: str = "Acoustic Grand Piano",
        instrument_program: int = 0,
        octave: int = 4,
        velocity: int = 80,
        include_bass: bool = True,
    ):
        """
        Initialize ChordMIDIExporter.

        Args:
            tempo: Tempo in BPM
            instrument_name: MIDI instrument name
            instrument_program: MIDI program number (0-127)
            octave: Octave of the chord roots (4 = middle C)
            velocity: Note velocity
            include_bass: Add the bass (or root) two octaves down
        """
        self.tempo = tempo
        self.instrument_name = instrument_name
        self.instrument_program = instrument_program
        self.octave = octave
        self.velocity = velocity
        self.include_bass = include_bass

    def timeline_to_pretty_midi(self, timeline: Timeline) -> pretty_midi.PrettyMIDI:
        """Convert a timeline to a PrettyMIDI object without saving."""
        midi = pretty_midi.PrettyMIDI(initial_tempo=self.tempo)
        instrument = pretty_midi.Instrument(
            program=self.instrument_program,
            name=self.instrument_name,
        )

        base = 12 * (self.octave + 1)
        for i, ev in enumerate(timeline):
            start, end = ev.start_time, timeline.end_of(i)
            if end <= start:
                continue
            root_pitch = base + ev.root
            for step in ev.quality.intervals:
                instrument.notes.append(pretty_midi.Note(
                    velocity=self.velocity, pitch=root_pitch + step, start=start, end=end,
                ))
            if self.include_bass:
                bass_pc = ev.bass_pitch_class if ev.is_slash else ev.root
                instrument.notes.append(pretty_midi.Note(
                    velocity=self.velocity,
                    pitch=base - 24 + to_pc(bass_pc),
                    start=start,
                    end=end,
                ))

        midi.instruments.append(instrument)
        return midi

    def export(self, timeline: Timeline, output_path: str) -> None:
        """
        Export a timeline to a MIDI file.

        Args:
            timeline: Chord timeline
            output_path: Path to output MIDI file
        """
        midi = self.timeline_to_pretty_midi(timeline)

        # Ensure output directory exists
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        midi.write(output_path)
