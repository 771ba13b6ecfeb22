"""Input layer - Audio loading and preparation."""

from .loader import AudioLoader
from .preprocess import to_mono, validate, resample, clean_signal, prepare

__all__ = [
    "AudioLoader",
    "to_mono",
    "validate",
    "resample",
    "clean_signal",
    "prepare",
]
