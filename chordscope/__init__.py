"""chordscope - Chord timeline extraction from audio recordings.

Architecture Layers:
    1. core/       - Pitch classes, keys, chords and timelines
    2. input/      - Audio loading and signal preparation
    3. analysis/   - Spectral features, tempo, music start and song profile
    4. inference/  - Key voting, chord decoding, consensus and refinement
    5. output/     - Display spelling, JSON and MIDI export
"""

__version__ = "0.3.0"

# Core types
from .core import ChordEvent, ChordQuality, Key, Provenance, Timeline, to_pc

# Configuration and errors
from .config import AnalysisConfig
from .errors import AnalysisCancelled, ChordscopeError, EmptyAudioError

# Diagnostics
from .diagnostics import DiagnosticCollector, DiagnosticEvent, LoggingObserver

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import FeatureExtractor, FeatureSet, TempoAnalyzer

# Inference layer
from .inference import (
    BassSegmenter,
    ConsensusMerger,
    KeyDetector,
    TimelineRefiner,
    TonicValidator,
    ViterbiDecoder,
)

# Pipeline
from .pipeline import AnalysisResult, ChordPipeline, analyze

# Output layer
from .output import ChordMIDIExporter, export_json

__all__ = [
    # Core
    "ChordEvent",
    "ChordQuality",
    "Key",
    "Provenance",
    "Timeline",
    "to_pc",
    # Configuration and errors
    "AnalysisConfig",
    "AnalysisCancelled",
    "ChordscopeError",
    "EmptyAudioError",
    # Diagnostics
    "DiagnosticCollector",
    "DiagnosticEvent",
    "LoggingObserver",
    # Input
    "AudioLoader",
    # Analysis
    "FeatureExtractor",
    "FeatureSet",
    "TempoAnalyzer",
    # Inference
    "BassSegmenter",
    "ConsensusMerger",
    "KeyDetector",
    "TimelineRefiner",
    "TonicValidator",
    "ViterbiDecoder",
    # Pipeline
    "AnalysisResult",
    "ChordPipeline",
    "analyze",
    # Output
    "ChordMIDIExporter",
    "export_json",
]
