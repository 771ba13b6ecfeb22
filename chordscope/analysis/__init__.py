"""Analysis modules - spectral features, tempo and clip profile."""

from .fft import fft_radix2, magnitude_spectrum, next_power_of_two
from .features import FeatureVector, FeatureSet, FeatureExtractor
from .tempo import TempoAnalyzer, TempoInfo, beat_grid, seconds_per_beat
from .profile import MusicStart, SongProfile, find_music_start, analyze_song_profile

__all__ = [
    "fft_radix2",
    "magnitude_spectrum",
    "next_power_of_two",
    "FeatureVector",
    "FeatureSet",
    "FeatureExtractor",
    "TempoAnalyzer",
    "TempoInfo",
    "beat_grid",
    "seconds_per_beat",
    "MusicStart",
    "SongProfile",
    "find_music_start",
    "analyze_song_profile",
]
