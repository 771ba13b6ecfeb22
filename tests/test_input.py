"""Tests for file loading and the command-line interface."""

import json

import numpy as np
import pytest
import soundfile as sf
from typer.testing import CliRunner

from chordscope.cli import app
from chordscope.input import AudioLoader

SR = 22050


def write_tone(path, freq: float = 440.0, duration: float = 2.0, channels: int = 1):
    t = np.linspace(0, duration, int(SR * duration), endpoint=False)
    tone = 0.3 * np.sin(2 * np.pi * freq * t)
    data = tone if channels == 1 else np.stack([tone] * channels, axis=1)
    sf.write(str(path), data, SR)
    return path


def write_progression(path):
    """C and F major triads with bass, 2 s each, twice."""
    t = np.linspace(0, 2.0, 2 * SR, endpoint=False)
    chords = [
        [261.63, 329.63, 392.00, 65.41],
        [349.23, 440.00, 523.25, 87.31],
    ] * 2
    audio = np.concatenate([sum(np.sin(2 * np.pi * f * t) for f in freqs) for freqs in chords])
    sf.write(str(path), 0.2 * audio, SR)
    return path


# ============================================================================
# Loader Tests
# ============================================================================

class TestAudioLoader:
    """Tests for AudioLoader."""

    def test_load_mono(self, tmp_path):
        path = write_tone(tmp_path / "a4.wav")
        audio, sr = AudioLoader().load(str(path))
        assert sr == SR
        assert AudioLoader().get_duration(audio, sr) == pytest.approx(2.0, rel=0.01)
        assert np.abs(audio).max() == pytest.approx(1.0, rel=1e-3)

    def test_load_keeps_channels(self, tmp_path):
        path = write_tone(tmp_path / "stereo.wav", channels=2)
        audio, _ = AudioLoader(mono=False).load(str(path))
        assert audio.shape[0] == 2

    def test_load_mono_downmix(self, tmp_path):
        path = write_tone(tmp_path / "stereo.wav", channels=2)
        audio, sr = AudioLoader(mono=True).load(str(path))
        assert audio.ndim == 1
        assert sr == SR

    def test_get_info(self, tmp_path):
        path = write_tone(tmp_path / "stereo.wav", channels=2)
        info = AudioLoader().get_info(str(path))
        assert info["channels"] == 2
        assert info["sample_rate"] == SR
        assert info["duration"] == pytest.approx(2.0, rel=0.01)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AudioLoader().load(str(tmp_path / "missing.wav"))

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not audio")
        with pytest.raises(ValueError):
            AudioLoader().load(str(path))


# ============================================================================
# CLI Tests
# ============================================================================

class TestCLI:
    """Tests for the typer application."""

    runner = CliRunner()

    def test_analyze_writes_outputs(self, tmp_path):
        audio_path = write_progression(tmp_path / "song.wav")
        json_path = tmp_path / "out.json"
        midi_path = tmp_path / "out.mid"

        result = self.runner.invoke(
            app, ["analyze", str(audio_path), "-o", str(json_path), "--midi", str(midi_path)]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(json_path.read_text())
        assert data["chords"]
        assert midi_path.exists()

    def test_analyze_missing_file(self, tmp_path):
        result = self.runner.invoke(app, ["analyze", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1

    def test_invalid_config(self, tmp_path):
        audio_path = write_tone(tmp_path / "a4.wav")
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"decoderr": {}}))
        result = self.runner.invoke(app, ["analyze", str(audio_path), "-c", str(config_path)])
        assert result.exit_code == 1

    def test_info(self, tmp_path):
        audio_path = write_tone(tmp_path / "a4.wav")
        result = self.runner.invoke(app, ["info", str(audio_path)])
        assert result.exit_code == 0, result.output
        assert "Sample rate: 22050" in result.output
