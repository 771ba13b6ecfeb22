"""Tests for signal preparation and feature extraction.

Tests cover:
- Radix-2 FFT against numpy
- Chroma and bass pitch on synthetic tones
- FeatureSet aggregates
- Tempo, music start and song profile
- Rejection of unusable input
"""

import dataclasses

import numpy as np
import pytest

from chordscope.analysis import (
    FeatureExtractor,
    FeatureSet,
    TempoAnalyzer,
    analyze_song_profile,
    beat_grid,
    fft_radix2,
    find_music_start,
)
from chordscope.config import ExtractionConfig
from chordscope.errors import EmptyAudioError
from chordscope.input import clean_signal, prepare, to_mono

SR = 22050


def generate_sine_wave(freq: float, duration: float, sr: int = SR) -> np.ndarray:
    """Generate a sine wave at given frequency."""
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    return np.sin(2 * np.pi * freq * t)


def generate_clicks(bpm: float, duration: float, sr: int = SR) -> np.ndarray:
    """Short tone bursts on every beat."""
    audio = np.zeros(int(sr * duration))
    burst = generate_sine_wave(1000.0, 0.01, sr)
    step = int(round(60.0 / bpm * sr))
    for start in range(0, len(audio) - len(burst), step):
        audio[start:start + len(burst)] = burst
    return audio


def chroma_of(*pcs) -> np.ndarray:
    chroma = np.zeros(12)
    chroma[list(pcs)] = 1.0
    return chroma / chroma.sum()


# ============================================================================
# FFT Tests
# ============================================================================

class TestFFT:
    """Tests for the radix-2 FFT."""

    def test_matches_numpy(self):
        """Power-of-two input matches numpy's FFT."""
        rng = np.random.default_rng(0)
        x = rng.standard_normal(256)
        np.testing.assert_allclose(fft_radix2(x), np.fft.fft(x), atol=1e-9)

    def test_pads_to_power_of_two(self):
        """Other lengths are zero-padded."""
        rng = np.random.default_rng(1)
        x = rng.standard_normal(100)
        result = fft_radix2(x)
        assert len(result) == 128
        np.testing.assert_allclose(result, np.fft.fft(x, n=128), atol=1e-9)

    def test_complex_input(self):
        rng = np.random.default_rng(2)
        x = rng.standard_normal(64) + 1j * rng.standard_normal(64)
        np.testing.assert_allclose(fft_radix2(x), np.fft.fft(x), atol=1e-9)


# ============================================================================
# Feature Extraction Tests
# ============================================================================

class TestFeatureExtractor:
    """Tests for FeatureExtractor on synthetic audio."""

    def test_a440_chroma(self):
        """A sine at 440 Hz peaks on pitch class A."""
        features = FeatureExtractor().extract(generate_sine_wave(440.0, 1.0), SR)
        assert features.num_frames > 0
        for chroma in features.chroma:
            assert chroma.sum() == pytest.approx(1.0)
            assert int(np.argmax(chroma)) == 9

    def test_bass_pitch(self):
        """A 110 Hz tone is detected as bass A; silence has no bass."""
        silence = np.zeros(SR)
        audio = np.concatenate([silence, generate_sine_wave(110.0, 2.0), silence])
        features = FeatureExtractor().extract(audio, SR)
        spf = features.sec_per_frame

        # Frames entirely inside the tone
        inside = [i for i in range(features.num_frames) if 1.2 <= i * spf <= 2.5]
        assert inside
        assert all(features.bass[i] == 9 for i in inside)

        # Frames entirely inside the leading silence
        silent = [i for i in range(features.num_frames) if i * spf + 4096 / SR < 1.0]
        assert silent
        assert all(features.bass[i] == -1 for i in silent)
        assert all(features.chroma[i].sum() == 0 for i in silent)

    def test_silence(self):
        """Silent frames have zero chroma, no bass and zero energy."""
        features = FeatureExtractor().extract(np.zeros(SR), SR)
        assert np.all(features.chroma == 0)
        assert np.all(features.bass == -1)
        assert np.all(features.energy == 0)

    def test_short_clip_padded(self):
        """A clip shorter than one frame still yields a frame."""
        features = FeatureExtractor().extract(generate_sine_wave(440.0, 0.05), SR)
        assert features.num_frames == 1

    def test_parallel_matches_sequential(self):
        """Thread-pool extraction produces the same features."""
        audio = generate_sine_wave(261.63, 4.0) + generate_sine_wave(98.0, 4.0)
        parallel = FeatureExtractor(ExtractionConfig(parallel=True, max_workers=4)).extract(audio, SR)
        sequential = FeatureExtractor(ExtractionConfig(parallel=False)).extract(audio, SR)
        np.testing.assert_allclose(parallel.chroma, sequential.chroma)
        np.testing.assert_array_equal(parallel.bass, sequential.bass)

    def test_stabilize_bass_drops_spikes(self):
        """A bass note seen once in its neighbourhood is discarded."""
        raw = np.array([0, 0, 0, 7, 0, 0, 0])
        bass = FeatureExtractor().stabilize_bass(raw)
        assert bass[3] == -1
        assert bass[0] == 0


# ============================================================================
# FeatureSet Tests
# ============================================================================

class TestFeatureSet:
    """Tests for FeatureSet aggregates."""

    def test_percentiles(self):
        """Percentiles use the lower-index convention."""
        n = 10
        features = FeatureSet(
            np.tile(chroma_of(0, 4, 7), (n, 1)),
            np.zeros(n),
            np.arange(1, n + 1, dtype=float),
            sr=10,
            hop_length=1,
        )
        assert features.energy_p50 == 5.0
        assert features.energy_p70 == 7.0
        assert features.energy_p30 == 3.0

    def test_read_only(self):
        features = FeatureSet(np.zeros((3, 12)), np.full(3, -1), np.ones(3), sr=10, hop_length=1)
        with pytest.raises(ValueError):
            features.energy[0] = 5.0

    def test_frame_access(self):
        """Indexing yields one frozen FeatureVector per frame."""
        features = FeatureSet(
            np.array([chroma_of(0, 4, 7), chroma_of(5)]), np.array([0, -1]), np.array([2.0, 1.0]),
            sr=10, hop_length=1,
        )
        frame = features[0]
        assert len(features) == 2
        assert frame.bass_pitch_class == 0
        assert frame.energy == 2.0
        assert frame.chroma.sum() == pytest.approx(1.0)
        assert features[1].bass_pitch_class == -1
        with pytest.raises(dataclasses.FrozenInstanceError):
            frame.energy = 0.0

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ValueError):
            FeatureSet(np.zeros((3, 12)), np.full(2, -1), np.ones(3), sr=10, hop_length=1)

    def test_flux_and_histogram(self):
        """Flux is positive only where new pitch classes appear."""
        chroma = np.array([chroma_of(0, 4, 7)] * 3 + [chroma_of(5, 9, 0)] * 3)
        bass = np.array([0, 0, 0, 5, 5, -1])
        features = FeatureSet(chroma, bass, np.ones(6), sr=10, hop_length=1)
        assert features.flux[3] > 0
        assert features.flux[1] == 0
        assert features.bass_histogram[0] == 3
        assert features.bass_histogram[5] == 2

    def test_global_chroma_weighted(self):
        """Louder frames dominate the clip chroma."""
        chroma = np.array([chroma_of(0), chroma_of(7)])
        features = FeatureSet(chroma, np.full(2, -1), np.array([3.0, 1.0]), sr=10, hop_length=1)
        assert features.global_chroma[0] == pytest.approx(0.75)
        assert features.global_chroma[7] == pytest.approx(0.25)


# ============================================================================
# Tempo and Profile Tests
# ============================================================================

class TestTempo:
    """Tests for TempoAnalyzer."""

    def test_click_track(self):
        """Bursts every half second read as 120 BPM."""
        assert TempoAnalyzer().detect(generate_clicks(120, 8.0), SR) == 120

    def test_short_clip_default(self):
        """Clips too short for the envelope fall back to the default."""
        assert TempoAnalyzer().detect(np.zeros(1000), SR) == 120

    def test_steady_tone_uses_default(self):
        """An envelope without periodic accents falls back to the default tempo."""
        assert TempoAnalyzer().detect(generate_sine_wave(440.0, 3.0), SR) == 120

    def test_unknown_method(self):
        from chordscope.config import TempoConfig

        with pytest.raises(ValueError):
            TempoAnalyzer(TempoConfig(method="psychic")).detect(np.zeros(SR), SR)

    def test_analyze_returns_grid(self):
        info = TempoAnalyzer().analyze(generate_clicks(120, 4.0), SR)
        assert info.bpm == 120
        assert info.seconds_per_beat == pytest.approx(0.5)
        assert len(info.beat_times) == 8
        assert info.method == "autocorr"

    def test_librosa_method_in_range(self):
        from chordscope.config import TempoConfig

        bpm = TempoAnalyzer(TempoConfig(method="librosa")).detect(generate_clicks(120, 8.0), SR)
        assert 60 <= bpm <= 200

    def test_beat_grid(self):
        grid = beat_grid(2.0, 120)
        np.testing.assert_allclose(grid, [0.0, 0.5, 1.0, 1.5])


class TestMusicStart:
    """Tests for music-start detection and the song profile."""

    def make_features(self):
        silent = [np.zeros(12)] * 10
        chord = [chroma_of(0, 4, 7)] * 20
        energy = np.concatenate([np.zeros(10), np.ones(20)])
        bass = np.concatenate([np.full(10, -1), np.zeros(20)])
        return FeatureSet(np.array(silent + chord), bass, energy, sr=10, hop_length=1)

    def test_start_after_silence(self):
        """The music starts at the first qualifying frame."""
        start = find_music_start(self.make_features())
        assert start.frame == 10
        assert start.time == pytest.approx(1.0)

    def test_sustained_profile(self):
        """A held chord counts as sustained and lengthens segments."""
        profile = analyze_song_profile(self.make_features())
        assert profile.sustain_level > 0.5
        assert profile.min_duration_multiplier > 1.0


# ============================================================================
# Preparation Tests
# ============================================================================

class TestPrepare:
    """Tests for input validation and preparation."""

    def test_empty_rejected(self):
        with pytest.raises(EmptyAudioError):
            prepare(np.zeros(0), SR, SR)

    def test_non_finite_rejected(self):
        audio = np.ones(100)
        audio[10] = np.nan
        with pytest.raises(EmptyAudioError):
            prepare(audio, SR, SR)

    def test_bad_sample_rate_rejected(self):
        with pytest.raises(EmptyAudioError):
            prepare(np.ones(100), 0, SR)

    def test_empty_audio_is_value_error(self):
        """Callers catching ValueError also catch empty input."""
        with pytest.raises(ValueError):
            prepare(np.zeros(0), SR, SR)

    def test_stereo_downmix(self):
        """Both channel layouts average to mono."""
        left, right = np.ones(1000), np.zeros(1000)
        np.testing.assert_allclose(to_mono(np.stack([left, right])), 0.5)
        np.testing.assert_allclose(to_mono(np.stack([left, right], axis=1)), 0.5)

    def test_duration_trims(self):
        mono = prepare(np.ones(SR * 2), SR, SR, duration=1.0)
        assert len(mono) == SR

    def test_resample(self):
        """Input at another rate is resampled to the analysis rate."""
        mono = prepare(generate_sine_wave(440.0, 1.0, 44100), 44100, SR)
        assert abs(len(mono) - SR) <= 1

    def test_clean_signal_gates_noise(self):
        audio = np.full(100, 1e-6)
        cleaned = clean_signal(audio)
        assert np.all(cleaned[2:] == 0)
