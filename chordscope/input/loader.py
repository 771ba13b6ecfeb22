"""Audio loading utilities."""

import numpy as np
import librosa
import soundfile as sf
from pathlib import Path
from typing import Tuple


class AudioLoader:
    """Handles audio file loading.

    Files are decoded at their native rate with channels intact; mixing
    down and resampling belong to the analysis pipeline.
    """

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".mp4", ".aiff", ".aif"}

    def __init__(
        self,
        mono: bool = False,
        normalize: bool = True,
    ):
        """
        Initialize AudioLoader.

        Args:
            mono: Convert to mono while decoding
            normalize: Normalize audio amplitude if True
        """
        self.mono = mono
        self.normalize = normalize

    def load(self, path: str) -> Tuple[np.ndarray, int]:
        """
        Load an audio file.

        Args:
            path: Path to audio file

        Returns:
            Tuple of (audio array shaped (channels, samples) or (samples,), sample rate)

        Raises:
            ValueError: If file format not supported
            FileNotFoundError: If file doesn't exist
        """
        path = self._check(path)

        audio, sr = librosa.load(
            str(path),
            sr=None,
            mono=self.mono,
        )

        if self.normalize:
            audio = self._normalize(audio)

        return audio, int(sr)

    def get_info(self, path: str) -> dict:
        """
        Read duration and format details without decoding samples.

        Args:
            path: Path to audio file

        Returns:
            Dictionary with sample_rate, channels, frames, duration, format
        """
        path = self._check(path)
        info = sf.info(str(path))
        return {
            "sample_rate": info.samplerate,
            "channels": info.channels,
            "frames": info.frames,
            "duration": info.duration,
            "format": info.format,
        }

    def _check(self, path) -> Path:
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {self.SUPPORTED_FORMATS}"
            )
        return path

    def _normalize(self, audio: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(audio).max() if audio.size else 0.0
        if peak > 0:
            audio = audio / peak
        return audio

    def get_duration(self, audio: np.ndarray, sr: int) -> float:
        """Get duration in seconds."""
        return audio.shape[-1] / sr
