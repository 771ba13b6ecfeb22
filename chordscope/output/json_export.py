"""JSON export of an analysis result."""

import json
from pathlib import Path
from typing import Any, Dict

import numpy as np

from ..core import Key
from .spelling import chord_label, key_name


def _to_builtin(value: Any) -> Any:
    """JSON fallback for numpy values; anything else is a type error."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def key_to_dict(key: Key) -> Dict[str, Any]:
    return {
        "root": key.root,
        "minor": key.minor,
        "name": key_name(key),
        "confidence": round(key.confidence, 3),
    }


def result_to_dict(result, include_diagnostics: bool = False) -> Dict[str, Any]:
    """
    Convert an AnalysisResult into JSON-serializable data.

    Args:
        result: AnalysisResult from the pipeline
        include_diagnostics: Include every diagnostic event

    Returns:
        Dictionary with key, tempo, timing and one entry per chord
    """
    key = result.key
    timeline = result.timeline
    chords = []
    for i, ev in enumerate(timeline):
        chords.append({
            "start": round(ev.start_time, 3),
            "end": round(timeline.end_of(i), 3),
            "label": chord_label(ev, key),
            "root": ev.root,
            "quality": ev.quality.value,
            "bass": ev.bass_pitch_class,
            "confidence": round(ev.confidence, 3),
            "provenance": ev.provenance.value,
            "roman": ev.get_roman_numeral(key),
        })

    data: Dict[str, Any] = {
        "key": key_to_dict(key),
        "initial_key": key_to_dict(result.initial_key) if result.initial_key else None,
        "tempo_bpm": result.tempo_bpm,
        "music_start_time": round(result.music_start_time, 3),
        "duration_seconds": round(result.duration_seconds, 3),
        "iterations": result.iterations,
        "style": {"mode": result.style.mode, "confidence": result.style.confidence} if result.style else None,
        "patterns": [{"roots": list(p.roots), "count": p.count} for p in result.patterns],
        "chords": chords,
    }
    if include_diagnostics:
        data["diagnostics"] = [
            {"stage": e.stage, "name": e.name, "data": e.data} for e in result.diagnostics
        ]
    return data


def export_json(result, output_path: str, include_diagnostics: bool = False) -> None:
    """Write an AnalysisResult to a JSON file."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(result_to_dict(result, include_diagnostics), f, indent=2, default=_to_builtin)
