"""Inference layer - key, chord decoding, consensus and refinement."""

from .theory import (
    ScaleChord,
    diatonic_chords,
    secondary_dominants,
    borrowed_chords,
    allowed_borrowed,
    classify_root,
    is_reasonable_chromatic,
    transition_score,
)
from .key import KeyDetector, SourceVote, TonicEstimate, ModeEstimate, TriadMatch
from .viterbi import ViterbiDecoder
from .segmenter import BassSegmenter, Segment
from .consensus import ConsensusMerger
from .patterns import Pattern, PatternMemory, find_patterns
from .style import StyleProfile, TimelineStats, detect_style, enforce_easy_diatonic
from .refine import RefinementResult, TimelineRefiner
from .tonic import KeyChangeGuard, TonicValidator

__all__ = [
    "ScaleChord",
    "diatonic_chords",
    "secondary_dominants",
    "borrowed_chords",
    "allowed_borrowed",
    "classify_root",
    "is_reasonable_chromatic",
    "transition_score",
    "KeyDetector",
    "SourceVote",
    "TonicEstimate",
    "ModeEstimate",
    "TriadMatch",
    "ViterbiDecoder",
    "BassSegmenter",
    "Segment",
    "ConsensusMerger",
    "Pattern",
    "PatternMemory",
    "find_patterns",
    "StyleProfile",
    "TimelineStats",
    "detect_style",
    "enforce_easy_diatonic",
    "RefinementResult",
    "TimelineRefiner",
    "KeyChangeGuard",
    "TonicValidator",
]
