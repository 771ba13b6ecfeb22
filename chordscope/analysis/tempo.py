"""Tempo and beat analysis."""

import numpy as np
import librosa
from dataclasses import dataclass
from typing import Optional

from ..config import TempoConfig


@dataclass
class TempoInfo:
    """Container for tempo analysis results."""

    bpm: int
    beat_times: np.ndarray  # Beat-grid positions in seconds
    method: str = "autocorr"

    @property
    def seconds_per_beat(self) -> float:
        return seconds_per_beat(self.bpm)


def seconds_per_beat(bpm: float, min_bpm: int = 60, max_bpm: int = 200) -> float:
    """Beat period for a tempo clamped to the supported range."""
    return 60.0 / max(min_bpm, min(max_bpm, bpm))


def beat_grid(duration: float, bpm: float) -> np.ndarray:
    """Evenly spaced beat positions from 0 up to (excluding) ``duration``."""
    if duration <= 0:
        return np.zeros(0)
    return np.arange(0.0, duration, seconds_per_beat(bpm))


class TempoAnalyzer:
    """Detect tempo from audio."""

    def __init__(self, config: Optional[TempoConfig] = None):
        self.config = config or TempoConfig()

    def detect(self, audio: np.ndarray, sr: int) -> int:
        """
        Estimate the tempo.

        Args:
            audio: Mono audio array
            sr: Sample rate

        Returns:
            Tempo in BPM, clamped to the configured range
        """
        if self.config.method == "librosa":
            return self._detect_librosa(audio, sr)
        if self.config.method != "autocorr":
            raise ValueError(f"Unknown tempo method: {self.config.method}")
        return self._detect_autocorr(audio, sr)

    def analyze(self, audio: np.ndarray, sr: int) -> TempoInfo:
        """
        Perform full tempo analysis.

        Args:
            audio: Mono audio array
            sr: Sample rate

        Returns:
            TempoInfo with the tempo and its beat grid
        """
        bpm = self.detect(audio, sr)
        return TempoInfo(
            bpm=bpm,
            beat_times=beat_grid(len(audio) / sr, bpm),
            method=self.config.method,
        )

    def energy_envelope(self, audio: np.ndarray, sr: int) -> np.ndarray:
        """Sum of squares over sliding windows, one value per hop."""
        cfg = self.config
        hop = max(1, int(cfg.hop_seconds * sr))
        if len(audio) < cfg.window:
            return np.zeros(0)
        cumulative = np.concatenate([[0.0], np.cumsum(np.asarray(audio, dtype=np.float64) ** 2)])
        starts = np.arange(0, len(audio) - cfg.window + 1, hop)
        return cumulative[starts + cfg.window] - cumulative[starts]

    def _clamp(self, bpm: float) -> int:
        if not np.isfinite(bpm) or bpm <= 0:
            return self.config.default_bpm
        return int(max(self.config.min_bpm, min(self.config.max_bpm, round(bpm))))

    def _detect_autocorr(self, audio: np.ndarray, sr: int) -> int:
        cfg = self.config
        energy = self.energy_envelope(audio, sr)
        if len(energy) < 4:
            return cfg.default_bpm

        hop_sec = max(1, int(cfg.hop_seconds * sr)) / sr
        min_lag = int(np.floor(cfg.min_lag_seconds / hop_sec))
        max_lag = int(np.floor(cfg.max_lag_seconds / hop_sec))

        # Mean-removed, so a steady envelope does not favour the shortest lag
        scale = float(np.dot(energy, energy))
        energy = energy - energy.mean()
        scores = np.array([
            np.dot(energy[: len(energy) - lag], energy[lag:]) if lag < len(energy) else 0.0
            for lag in range(min_lag, max_lag + 1)
        ])
        if len(scores) == 0 or scores.max() <= 1e-6 * scale:
            return cfg.default_bpm
        best_lag = min_lag + int(np.argmax(scores))
        if best_lag <= 0:
            return cfg.default_bpm
        return self._clamp(60.0 / (best_lag * hop_sec))

    def _detect_librosa(self, audio: np.ndarray, sr: int) -> int:
        tempo, _ = librosa.beat.beat_track(y=np.asarray(audio, dtype=np.float32), sr=sr)

        # Handle tempo as array (newer librosa versions)
        if isinstance(tempo, np.ndarray):
            tempo = float(tempo[0]) if len(tempo) > 0 else float(self.config.default_bpm)

        return self._clamp(tempo)
