"""Signal preparation performed by the core before feature extraction."""

import numpy as np
import librosa
from typing import Optional

from ..errors import EmptyAudioError


def to_mono(audio: np.ndarray) -> np.ndarray:
    """
    Downmix to mono by averaging channels.

    Accepts (samples,), (channels, samples) or (samples, channels); the
    shorter axis is taken to be the channel axis.
    """
    audio = np.asarray(audio, dtype=np.float64)
    if audio.ndim == 1:
        return audio
    if audio.ndim != 2:
        raise EmptyAudioError(f"Expected 1-D or 2-D audio, got shape {audio.shape}")
    channel_axis = 0 if audio.shape[0] <= audio.shape[1] else 1
    return audio.mean(axis=channel_axis)


def validate(audio: np.ndarray, sr: int) -> None:
    """
    Reject input that cannot be analyzed.

    Raises:
        EmptyAudioError: On zero-length, non-finite or silent-by-construction input
    """
    if sr is None or sr <= 0:
        raise EmptyAudioError(f"Invalid sample rate: {sr}")
    if audio is None or np.size(audio) == 0:
        raise EmptyAudioError("Audio buffer is empty")
    if not np.all(np.isfinite(audio)):
        raise EmptyAudioError("Audio contains NaN or infinite samples")


def resample(audio: np.ndarray, orig_sr: int, target_sr: int) -> np.ndarray:
    """Resample to the internal analysis rate."""
    if orig_sr == target_sr:
        return audio
    return librosa.resample(audio, orig_sr=orig_sr, target_sr=target_sr)


def clean_signal(audio: np.ndarray, pre_emphasis: float = 0.97, gate: float = 1e-4) -> np.ndarray:
    """
    Pre-emphasis, noise gate and 3-tap smoothing.

    Args:
        audio: Mono samples
        pre_emphasis: First-order high-pass coefficient
        gate: Samples with smaller magnitude are zeroed

    Returns:
        Cleaned copy of the signal
    """
    if audio.size < 3:
        return audio.copy()
    out = np.empty_like(audio)
    out[0] = audio[0]
    out[1:] = audio[1:] - pre_emphasis * audio[:-1]
    out[np.abs(out) < gate] = 0.0

    smoothed = out.copy()
    smoothed[1:-1] = (out[:-2] + out[1:-1] + out[2:]) / 3.0
    return smoothed


def prepare(
    audio: np.ndarray,
    sr: int,
    target_sr: int,
    duration: Optional[float] = None,
    clean: bool = False,
) -> np.ndarray:
    """
    Validate, downmix, optionally trim to a known duration, clean and resample.

    Args:
        audio: Sample buffer (mono or multi-channel)
        sr: Source sample rate
        target_sr: Internal analysis rate
        duration: Known duration in seconds; longer buffers are trimmed
        clean: Apply clean_signal before resampling

    Returns:
        Mono float64 signal at ``target_sr``
    """
    validate(audio, sr)
    mono = to_mono(audio)
    if duration is not None and duration > 0:
        mono = mono[: int(round(duration * sr))]
    if mono.size == 0:
        raise EmptyAudioError("Audio buffer is empty after trimming")
    if clean:
        mono = clean_signal(mono)
    return np.asarray(resample(mono, sr, target_sr), dtype=np.float64)
