"""Output layer - Display spelling and export.

This layer handles everything that leaves the core:
- enharmonic spelling of chord and key names
- JSON result files
- MIDI renderings of the chord timeline
"""

from .spelling import chord_label, key_name, note_name, uses_flats
from .json_export import export_json, result_to_dict
from .midi import ChordMIDIExporter

__all__ = [
    "chord_label",
    "key_name",
    "note_name",
    "uses_flats",
    "export_json",
    "result_to_dict",
    "ChordMIDIExporter",
]
