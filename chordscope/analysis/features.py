"""Spectral feature extraction - chroma, bass pitch and energy per frame.

Every frame depends only on its own sample window, so frames are
computed on a thread pool and written into pre-sized arrays by index.
The bass stability filter and the aggregates need the whole clip and run
afterwards, sequentially.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple

import numpy as np

from ..config import ExtractionConfig
from ..core.pitch import to_pc
from .fft import fft_radix2, magnitude_spectrum, next_power_of_two

PERCENTILES = (30, 50, 70, 80)

# Frames per thread-pool task
_CHUNK = 32


@dataclass(frozen=True)
class FeatureVector:
    """Features of one analysis frame."""

    chroma: np.ndarray  # 12 bins, sums to 1 (all zero for silence)
    bass_pitch_class: int  # -1 = no stable low pitch
    energy: float


def _percentile(sorted_values: np.ndarray, p: float) -> float:
    if len(sorted_values) == 0:
        return 0.0
    return float(sorted_values[int(np.floor(p / 100.0 * (len(sorted_values) - 1)))])


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.setflags(write=False)
    return arr


class FeatureSet:
    """All frames of a clip plus aggregates reused by later stages.

    Read-only after construction.
    """

    def __init__(
        self,
        chroma: np.ndarray,
        bass: np.ndarray,
        energy: np.ndarray,
        sr: int,
        hop_length: int,
        bass_raw: Optional[np.ndarray] = None,
        frame_size: int = 0,
    ):
        chroma = np.asarray(chroma, dtype=np.float64).reshape(-1, 12)
        bass = np.asarray(bass, dtype=np.int64)
        energy = np.asarray(energy, dtype=np.float64)
        if not (len(chroma) == len(bass) == len(energy)):
            raise ValueError("chroma, bass and energy must have one entry per frame")

        self.chroma = _readonly(chroma)
        self.bass = _readonly(bass)
        self.bass_raw = _readonly(np.asarray(bass if bass_raw is None else bass_raw, dtype=np.int64))
        self.energy = _readonly(energy)
        self.sr = int(sr)
        self.hop_length = int(hop_length)
        self.frame_size = int(frame_size)

        total = energy.sum()
        weighted = (chroma * energy[:, None]).sum(axis=0)
        self.global_chroma = _readonly(weighted / total if total > 0 else np.zeros(12))

        sorted_energy = np.sort(energy)
        self._percentiles: Dict[int, float] = {
            p: _percentile(sorted_energy, p) for p in PERCENTILES
        }

        flux = np.zeros(len(chroma))
        if len(chroma) > 1:
            flux[1:] = np.clip(np.diff(chroma, axis=0), 0.0, None).sum(axis=1)
        self.flux = _readonly(flux)
        self.flux_p80 = _percentile(np.sort(flux), 80)

        hist = np.bincount(bass[bass >= 0], minlength=12)[:12] if len(bass) else np.zeros(12)
        self.bass_histogram = _readonly(hist.astype(np.int64))

    # -- frame access ---------------------------------------------------

    @property
    def num_frames(self) -> int:
        return len(self.chroma)

    def __len__(self) -> int:
        return self.num_frames

    def __getitem__(self, index: int) -> FeatureVector:
        return FeatureVector(
            chroma=self.chroma[index],
            bass_pitch_class=int(self.bass[index]),
            energy=float(self.energy[index]),
        )

    @property
    def sec_per_frame(self) -> float:
        return self.hop_length / self.sr

    def time_of(self, frame: int) -> float:
        return frame * self.sec_per_frame

    def frame_of(self, time: float) -> int:
        """Nearest frame index for a time, clamped to the clip."""
        if self.num_frames == 0:
            return 0
        return int(min(self.num_frames - 1, max(0, round(time / self.sec_per_frame))))

    # -- aggregates -----------------------------------------------------

    def energy_percentile(self, p: int) -> float:
        if p in self._percentiles:
            return self._percentiles[p]
        return _percentile(np.sort(self.energy), p)

    @property
    def energy_p30(self) -> float:
        return self._percentiles[30]

    @property
    def energy_p50(self) -> float:
        return self._percentiles[50]

    @property
    def energy_p70(self) -> float:
        return self._percentiles[70]

    @property
    def energy_p80(self) -> float:
        return self._percentiles[80]

    def avg_chroma(self, start: int, end: int) -> np.ndarray:
        """Mean chroma over frames ``[start, end)``; zeros for an empty range."""
        start = max(0, start)
        end = min(self.num_frames, end)
        if end <= start:
            return np.zeros(12)
        return self.chroma[start:end].mean(axis=0)


@lru_cache(maxsize=4)
def _chroma_map(
    n_fft: int,
    sr: int,
    fmin: float,
    fmax: float,
    sweet_spot: Tuple[int, int],
    weights: Tuple[float, float, float],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Bin indices, pitch classes and register weights of the chroma range."""
    bins = np.arange(1, n_fft // 2)
    freqs = bins * sr / n_fft
    mask = (freqs >= fmin) & (freqs <= fmax)
    bins, freqs = bins[mask], freqs[mask]

    midi = 69 + 12 * np.log2(freqs / 440.0)
    pcs = np.mod(np.round(midi).astype(np.int64), 12)

    octave = np.floor(midi / 12)
    sweet, low, high = weights
    w = np.where(
        (octave >= sweet_spot[0]) & (octave <= sweet_spot[1]),
        sweet,
        np.where(octave < sweet_spot[0], low, high),
    )
    return bins, pcs, w


@lru_cache(maxsize=4)
def _bass_basis(n_fft: int, sr: int, fmax: float) -> Tuple[np.ndarray, np.ndarray]:
    """Bass bin indices and their cosine resynthesis basis."""
    bins = np.arange(1, n_fft // 2)
    bins = bins[bins * sr / n_fft <= fmax]
    n = np.arange(n_fft)
    basis = np.cos(2 * np.pi * np.outer(bins, n) / n_fft)
    return bins, basis


class FeatureExtractor:
    """Compute a FeatureSet from mono samples at the analysis rate."""

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.window = np.hanning(self.config.frame_size)

    def extract(self, audio: np.ndarray, sr: int) -> FeatureSet:
        """
        Extract per-frame features.

        Args:
            audio: Mono samples
            sr: Sample rate of ``audio``

        Returns:
            FeatureSet with one frame per hop
        """
        cfg = self.config
        audio = np.asarray(audio, dtype=np.float64)
        win = cfg.frame_size
        hop = max(1, int(cfg.hop_seconds * sr))

        # Clips shorter than one frame still get a single (padded) frame
        if len(audio) < win:
            audio = np.concatenate([audio, np.zeros(win - len(audio))])

        starts = np.arange(0, len(audio) - win + 1, hop)
        n_frames = len(starts)

        chroma = np.zeros((n_frames, 12))
        bass_raw = np.full(n_frames, -1, dtype=np.int64)
        energy = np.zeros(n_frames)

        def run(chunk_start: int) -> None:
            for i in range(chunk_start, min(chunk_start + _CHUNK, n_frames)):
                frame = audio[starts[i]: starts[i] + win]
                chroma[i], bass_raw[i], energy[i] = self.analyze_frame(frame, sr)

        chunks = range(0, n_frames, _CHUNK)
        if cfg.parallel and n_frames > _CHUNK:
            with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
                # list() re-raises worker exceptions here
                list(pool.map(run, chunks))
        else:
            for chunk_start in chunks:
                run(chunk_start)

        bass = self.stabilize_bass(bass_raw)

        return FeatureSet(
            chroma=chroma,
            bass=bass,
            energy=energy,
            sr=sr,
            hop_length=hop,
            bass_raw=bass_raw,
            frame_size=win,
        )

    def analyze_frame(self, frame: np.ndarray, sr: int) -> Tuple[np.ndarray, int, float]:
        """
        Features of one raw (unwindowed) frame.

        Returns:
            Tuple of (chroma, raw bass pitch class, energy)
        """
        window = self.window if len(frame) == len(self.window) else np.hanning(len(frame))
        windowed = frame * window
        energy = float(np.dot(windowed, windowed))

        if energy <= self.config.silence_energy:
            return np.zeros(12), -1, energy

        mags, n_fft = magnitude_spectrum(windowed)
        return self.compute_chroma(mags, n_fft, sr), self.detect_bass(mags, n_fft, sr), energy

    def compute_chroma(self, mags: np.ndarray, n_fft: int, sr: int) -> np.ndarray:
        """
        Fold a magnitude spectrum into a 12-bin chroma vector.

        Square-root compression tames dynamic range and the register
        weight favours the middle octaves.
        """
        cfg = self.config
        bins, pcs, weights = _chroma_map(
            n_fft, sr, cfg.chroma_fmin, cfg.chroma_fmax,
            tuple(cfg.sweet_spot_octaves),
            (cfg.sweet_spot_weight, cfg.low_octave_weight, cfg.high_octave_weight),
        )
        chroma = np.bincount(pcs, weights=np.sqrt(mags[bins]) * weights, minlength=12)
        total = chroma.sum()
        if total <= 0:
            return np.zeros(12)
        return chroma / total

    def detect_bass(self, mags: np.ndarray, n_fft: int, sr: int) -> int:
        """
        Estimate the bass pitch class of one frame.

        The bass bins are resynthesized into a zero-phase low-pass signal
        whose autocorrelation peak over the bass lag range gives F0.

        Returns:
            Pitch class 0-11, or -1 when no periodicity clears the threshold
        """
        cfg = self.config
        bins, basis = _bass_basis(n_fft, sr, cfg.bass_fmax)
        if len(bins) == 0:
            return -1

        power = mags ** 2
        total_power = power[1:].sum()
        if total_power <= 0 or power[bins].sum() / total_power < cfg.bass_min_band_ratio:
            return -1

        y = mags[bins] @ basis
        y = y - y.mean()

        ac = self._autocorrelation(y)
        if ac[0] <= 0:
            return -1

        min_lag = int(np.floor(sr / cfg.bass_fmax))
        max_lag = min(int(np.floor(sr / cfg.bass_fmin)), len(y) - 1)
        if max_lag <= min_lag:
            return -1

        r = ac[min_lag: max_lag + 1] / ac[0]
        best = int(np.argmax(r))
        if r[best] < cfg.bass_correlation_threshold:
            return -1

        f0 = sr / (min_lag + best)
        if not (cfg.bass_fmin <= f0 <= cfg.bass_fmax):
            return -1
        midi = 69 + 12 * np.log2(f0 / 440.0)
        return to_pc(int(round(midi)))

    @staticmethod
    def _autocorrelation(y: np.ndarray) -> np.ndarray:
        """Linear (non-circular) autocorrelation for lags 0..len(y)-1."""
        n = len(y)
        spectrum = fft_radix2(np.concatenate([y, np.zeros(next_power_of_two(2 * n) - n)]))
        power = np.abs(spectrum) ** 2
        # Inverse FFT through the forward transform: ifft(x) = conj(fft(conj(x))) / N
        ac = np.conj(fft_radix2(np.conj(power))).real / len(power)
        return ac[:n]

    def stabilize_bass(self, bass_raw: np.ndarray) -> np.ndarray:
        """
        Keep a raw bass estimate only if it recurs in its neighbourhood.

        Rejects single-frame spikes such as percussive transients.
        """
        radius = self.config.bass_stability_radius
        needed = self.config.bass_stability_count
        n = len(bass_raw)
        bass = np.full(n, -1, dtype=np.int64)
        for i in range(n):
            bp = bass_raw[i]
            if bp < 0:
                continue
            lo, hi = max(0, i - radius), min(n, i + radius + 1)
            if np.count_nonzero(bass_raw[lo:hi] == bp) >= needed:
                bass[i] = bp
        return bass
