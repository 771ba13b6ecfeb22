"""End-to-end chord analysis of one clip.

Stages run strictly in order, each consuming the full output of the
previous one:

    prepare -> tempo -> features -> music start / profile -> key
            -> decode (Viterbi + segmenter) -> merge -> refine -> tonic check

If the tonic check replaces the key, decode, merge and refine run once
more against the new key. Progress is reported and cancellation checked
only between stages.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import structlog

from .analysis import (
    FeatureExtractor,
    FeatureSet,
    SongProfile,
    TempoAnalyzer,
    analyze_song_profile,
    find_music_start,
)
from .config import AnalysisConfig
from .core import Key, Timeline
from .diagnostics import (
    CancelCheck,
    DiagnosticCollector,
    DiagnosticEvent,
    DiagnosticObserver,
    Emitter,
    ProgressCallback,
    ProgressReporter,
)
from .input import AudioLoader, prepare
from .inference import (
    BassSegmenter,
    ConsensusMerger,
    KeyChangeGuard,
    KeyDetector,
    Pattern,
    StyleProfile,
    TimelineRefiner,
    TimelineStats,
    TonicValidator,
    ViterbiDecoder,
)

log = structlog.get_logger()

MAX_ITERATIONS = 2


@dataclass
class AnalysisResult:
    """Everything the pipeline produced for one clip."""

    timeline: Timeline
    key: Key
    tempo_bpm: int
    music_start_time: float
    duration_seconds: float
    initial_key: Optional[Key] = None  # Key before tonic re-validation
    style: Optional[StyleProfile] = None
    patterns: List[Pattern] = field(default_factory=list)
    stats: Optional[TimelineStats] = None
    iterations: int = 1
    diagnostics: List[DiagnosticEvent] = field(default_factory=list)

    @property
    def key_changed(self) -> bool:
        return self.initial_key is not None and not self.initial_key.same_tonality(self.key)


class ChordPipeline:
    """Run the full analysis with one configuration."""

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Thresholds for every stage (defaults when None)
            observer: Receives diagnostic events in addition to the result's copy
            progress: Called with (stage, fraction) at stage boundaries
            should_cancel: Polled at stage boundaries; True aborts the analysis
        """
        self.config = config or AnalysisConfig()
        self.observer = observer
        self.progress = progress
        self.should_cancel = should_cancel

    def analyze_file(self, path: str) -> AnalysisResult:
        """Load an audio file and analyze it."""
        audio, sr = AudioLoader(mono=False).load(path)
        return self.analyze(audio, sr)

    def analyze(self, audio: np.ndarray, sr: int, duration: Optional[float] = None) -> AnalysisResult:
        """
        Analyze a sample buffer.

        Args:
            audio: Mono or multi-channel samples
            sr: Source sample rate
            duration: Known clip duration in seconds (trims longer buffers)

        Returns:
            AnalysisResult

        Raises:
            EmptyAudioError: If the buffer cannot be analyzed
            AnalysisCancelled: If ``should_cancel`` returned True at a stage boundary
        """
        cfg = self.config
        collector = DiagnosticCollector(forward=self.observer)
        emit = Emitter("pipeline", collector)
        reporter = ProgressReporter(self.progress, self.should_cancel)

        reporter.checkpoint("prepare", 0.0)
        target_sr = cfg.extraction.sample_rate
        signal = prepare(audio, sr, target_sr, duration, clean=cfg.extraction.clean_signal)
        clip_duration = len(signal) / target_sr

        reporter.checkpoint("tempo", 0.05)
        bpm = TempoAnalyzer(cfg.tempo).detect(signal, target_sr)
        emit("tempo", bpm=bpm)

        reporter.checkpoint("features", 0.10)
        features = FeatureExtractor(cfg.extraction).extract(signal, target_sr)
        emit("features", frames=features.num_frames, sec_per_frame=features.sec_per_frame)

        reporter.checkpoint("music_start", 0.40)
        start = find_music_start(features, cfg.profile)
        profile = analyze_song_profile(features, cfg.profile)
        emit(
            "music_start",
            time=round(start.time, 3),
            chroma_variance=round(profile.chroma_variance, 3),
            sustain_level=round(profile.sustain_level, 3),
        )

        reporter.checkpoint("key", 0.45)
        key = KeyDetector(cfg.key, collector).detect(features, start.frame)
        initial_key = key

        guard = KeyChangeGuard(cfg.tonic.max_key_changes)
        validator = TonicValidator(cfg.tonic, collector)
        refined = None
        iteration = 0
        while iteration < MAX_ITERATIONS:
            iteration += 1
            base = 0.55 + 0.2 * (iteration - 1)

            reporter.checkpoint("decode", base)
            merged = self._decode(features, key, bpm, start.frame, clip_duration, profile, collector)

            reporter.checkpoint("refine", base + 0.1)
            refined = TimelineRefiner(cfg.refinement, cfg.style, collector).refine(
                merged, features, key, bpm
            )

            # The key only changes when another decode will use it
            if iteration == MAX_ITERATIONS:
                break

            reporter.checkpoint("validate", base + 0.15)
            validated = validator.validate(refined.timeline, key, guard)
            if validated.same_tonality(key):
                break
            emit("rerun", old=key.name, new=validated.name)
            key = validated

        reporter.checkpoint("done", 1.0)
        log.debug(
            "analysis_complete",
            key=key.name,
            bpm=bpm,
            chords=len(refined.timeline),
            iterations=iteration,
        )
        return AnalysisResult(
            timeline=refined.timeline,
            key=key,
            tempo_bpm=bpm,
            music_start_time=start.time,
            duration_seconds=clip_duration,
            initial_key=initial_key,
            style=refined.style,
            patterns=refined.patterns,
            stats=refined.stats,
            iterations=iteration,
            diagnostics=list(collector.events),
        )

    def _decode(
        self,
        features: FeatureSet,
        key: Key,
        bpm: int,
        start_frame: int,
        end_time: float,
        profile: SongProfile,
        observer: DiagnosticObserver,
    ) -> Timeline:
        """Run both decoders against ``key`` and merge their timelines."""
        cfg = self.config
        conservative = key.confidence < cfg.key.low_confidence_threshold
        viterbi = ViterbiDecoder(cfg.decoder, observer).decode(
            features, key, start_frame, end_time, conservative=conservative
        )
        segmented = BassSegmenter(cfg.segmenter, observer).decode(
            features, key, bpm, start_frame, end_time, profile
        )
        return ConsensusMerger(observer).merge(viterbi, segmented, key)


def analyze(audio: np.ndarray, sr: int, config: Optional[AnalysisConfig] = None, **kwargs) -> AnalysisResult:
    """Convenience wrapper around ``ChordPipeline(config, **kwargs).analyze``."""
    return ChordPipeline(config, **kwargs).analyze(audio, sr)
