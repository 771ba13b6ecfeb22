"""Analysis configuration - every tuned threshold of the pipeline.

The values are empirical: they are what produced musically plausible
timelines on real recordings, not constants derived from theory. Each
stage reads only its own section, so a caller can override a single
threshold without touching the rest.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, Optional, Tuple

from .core.constants import (
    DEFAULT_SR,
    DEFAULT_FRAME_SIZE,
    DEFAULT_HOP_SECONDS,
    DEFAULT_TEMPO,
    MIN_TEMPO,
    MAX_TEMPO,
)


@dataclass
class ExtractionConfig:
    """Configuration for spectral feature extraction.

    Attributes:
        sample_rate: Internal analysis rate; input is resampled to it (default: 22050)
        frame_size: FFT frame length in samples, a power of two (default: 4096)
        hop_seconds: Hop between frames in seconds (default: 0.10)
        clean_signal: Apply pre-emphasis, noise gate and smoothing first (default: False)
        chroma_fmin: Lowest frequency folded into chroma in Hz (default: 80)
        chroma_fmax: Highest frequency folded into chroma in Hz (default: 5000)
        sweet_spot_octaves: Octave range weighted up in chroma (default: 3-6)
        sweet_spot_weight: Chroma weight inside the sweet spot (default: 1.2)
        low_octave_weight: Chroma weight below the sweet spot (default: 0.8)
        high_octave_weight: Chroma weight above the sweet spot (default: 0.7)
        bass_fmin: Lowest bass F0 in Hz (default: 40)
        bass_fmax: Highest bass F0 in Hz (default: 250)
        bass_correlation_threshold: Minimum normalized autocorrelation (default: 0.3)
        bass_min_band_ratio: Minimum share of spectral power in the bass band (default: 0.02)
        bass_stability_radius: Neighbourhood half-width for the stability check (default: 2)
        bass_stability_count: Occurrences needed inside the neighbourhood (default: 2)
        silence_energy: Frame energy at or below which chroma is all zero (default: 1e-10)
        parallel: Extract frames on a thread pool (default: True)
        max_workers: Thread pool size, None for the executor default (default: None)
    """

    sample_rate: int = DEFAULT_SR
    frame_size: int = DEFAULT_FRAME_SIZE
    hop_seconds: float = DEFAULT_HOP_SECONDS
    clean_signal: bool = False
    chroma_fmin: float = 80.0
    chroma_fmax: float = 5000.0
    sweet_spot_octaves: Tuple[int, int] = (3, 6)
    sweet_spot_weight: float = 1.2
    low_octave_weight: float = 0.8
    high_octave_weight: float = 0.7
    bass_fmin: float = 40.0
    bass_fmax: float = 250.0
    bass_correlation_threshold: float = 0.3
    bass_min_band_ratio: float = 0.02
    bass_stability_radius: int = 2
    bass_stability_count: int = 2
    silence_energy: float = 1e-10
    parallel: bool = True
    max_workers: Optional[int] = None

    @property
    def hop_length(self) -> int:
        return max(1, int(self.hop_seconds * self.sample_rate))


@dataclass
class TempoConfig:
    """Configuration for tempo estimation.

    Attributes:
        method: "autocorr" (energy-envelope autocorrelation) or "librosa" (default: autocorr)
        window: Energy window in samples (default: 4096)
        hop_seconds: Energy envelope hop in seconds (default: 0.1)
        min_lag_seconds: Shortest beat period considered (default: 0.3)
        max_lag_seconds: Longest beat period considered (default: 2.0)
        min_bpm: Lower clamp (default: 60)
        max_bpm: Upper clamp (default: 200)
        default_bpm: Fallback for clips too short to analyze (default: 120)
    """

    method: str = "autocorr"
    window: int = 4096
    hop_seconds: float = 0.1
    min_lag_seconds: float = 0.3
    max_lag_seconds: float = 2.0
    min_bpm: int = MIN_TEMPO
    max_bpm: int = MAX_TEMPO
    default_bpm: int = DEFAULT_TEMPO


@dataclass
class ProfileConfig:
    """Configuration for music-start detection and the song profile.

    Attributes:
        start_energy_ratio: Energy needed relative to the median (default: 0.7)
        clear_pitch_ratio: Chroma peak over mean that counts as clear pitch (default: 2.0)
        start_stable_frames: Consecutive qualifying frames (default: 2)
        max_start_seconds: Music start is never later than this (default: 8.0)
        sustained_level: Sustain share above which segments get longer (default: 0.5)
        sustained_duration_multiplier: Minimum-duration multiplier for sustained songs (default: 1.3)
    """

    start_energy_ratio: float = 0.7
    clear_pitch_ratio: float = 2.0
    start_stable_frames: int = 2
    max_start_seconds: float = 8.0
    sustained_level: float = 0.5
    sustained_duration_multiplier: float = 1.3


@dataclass
class KeyConfig:
    """Configuration for tonal-center voting and mode detection.

    Attributes:
        opening_seconds: Opening window weighted up in the bass histogram (default: 15)
        closing_seconds: Closing window weighted up in the bass histogram (default: 15)
        bass_vote_tiers: (confidence, votes) pairs for the bass vote, highest first
        bass_vote_floor: Votes for a bass tonic below every tier (default: 2)
        ks_strong_confidence: KS confidence that earns the larger vote (default: 0.75)
        ks_votes: (strong, weak) KS votes (default: 2, 1)
        first_chord_frames: Energetic frames scanned for the first chord (default: 20)
        first_chord_min_score: Score needed for the first-chord vote (default: 0.25)
        first_chord_strong_score: Score that earns the larger vote (default: 0.45)
        first_chord_votes: (strong, weak, conflicting) votes (default: 4, 3, 2)
        bass_conflict_confidence: Bass confidence that discounts a disagreeing first chord (default: 0.90)
        triad_min_strength: Per-tone chroma floor in the triad detector (default: 0.08)
        triad_min_score: Score floor of the triad detector (default: 0.3)
        dominant_min_peak: Chroma peak that counts a frame for the dominant vote (default: 0.15)
        dominant_min_frames: Frames needed before the dominant vote counts (default: 10)
        dominant_votes: Votes for the dominant pitch class (default: 2)
        fourth_trap_vote_slack: Vote gap tolerated by the I-vs-IV guard (default: 1)
        fourth_trap_score: First-chord score that triggers the guard alone (default: 0.35)
        third_margin: Third-ratio margin required to commit a mode (default: 0.10)
        upper_degree_margin: Sixth/seventh ratio margin (default: 0.15)
        bass_energy_ratio: Share of P70 a frame needs to enter the bass histogram (default: 0.5)
        bass_timeline_energy_ratio: Share of P70 a frame needs to extend the bass timeline (default: 0.4)
        ks_energy_ratio: Share of P70 a frame needs to enter the key profile (default: 0.6)
        first_chord_energy_ratio: Share of P70 a frame needs for the first-chord scan (default: 0.4)
        dominant_energy_ratio: Share of P70 a frame needs for the dominant vote (default: 0.5)
        mode_energy_ratio: Share of P50 a frame needs for mode evidence (default: 0.3)
        mode_third_floor: Absolute third strength that earns the bonus (default: 0.12)
        mode_weights: Weights of (third, sixth, seventh, absolute third) evidence
        low_confidence_threshold: Below this, the decoders run conservatively (default: 0.65)
    """

    opening_seconds: float = 15.0
    closing_seconds: float = 15.0
    bass_vote_tiers: Tuple[Tuple[float, int], ...] = ((0.95, 5), (0.85, 4), (0.75, 3))
    bass_vote_floor: int = 2
    ks_strong_confidence: float = 0.75
    ks_votes: Tuple[int, int] = (2, 1)
    first_chord_frames: int = 20
    first_chord_min_score: float = 0.25
    first_chord_strong_score: float = 0.45
    first_chord_votes: Tuple[int, int, int] = (4, 3, 2)
    bass_conflict_confidence: float = 0.90
    triad_min_strength: float = 0.08
    triad_min_score: float = 0.3
    dominant_min_peak: float = 0.15
    dominant_min_frames: int = 10
    dominant_votes: int = 2
    fourth_trap_vote_slack: int = 1
    fourth_trap_score: float = 0.35
    third_margin: float = 0.10
    upper_degree_margin: float = 0.15
    bass_energy_ratio: float = 0.5
    bass_timeline_energy_ratio: float = 0.4
    ks_energy_ratio: float = 0.6
    first_chord_energy_ratio: float = 0.4
    dominant_energy_ratio: float = 0.5
    mode_energy_ratio: float = 0.3
    mode_third_floor: float = 0.12
    mode_weights: Tuple[float, float, float, float] = (50.0, 20.0, 15.0, 15.0)
    low_confidence_threshold: float = 0.65


@dataclass
class DecoderConfig:
    """Configuration for the Viterbi (beam search) decoder.

    Attributes:
        beam_width: Predecessor states expanded per frame (default: 8)
        conservative_beam_width: Beam used when key confidence is low (default: 4)
        template_weight: Scale of the chroma/template cosine similarity (default: 3.0)
        bass_root_bonus: Emission bonus when the bass is the chord root (default: 0.5)
        bass_third_bonus: Emission bonus when the bass is the third (default: 0.2)
        bass_fifth_bonus: Emission bonus when the bass is the fifth (default: 0.15)
        in_key_bonus: Emission bonus for diatonic states (default: 0.2)
        low_energy_ratio: Energy below this share of P70 is penalized hard (default: 0.2)
        low_energy_penalty: Penalty below ``low_energy_ratio`` (default: 1.0)
        soft_energy_ratio: Energy below this share of P70 is penalized softly (default: 0.4)
        soft_energy_penalty: Penalty below ``soft_energy_ratio`` (default: 0.3)
        emission_floor: Frames whose best emission stays below are left unassigned (default: 0.5)
        stay_bonus: Transition score for staying on a state (default: 0.5)
        change_penalty: Base cost of any chord change (default: 0.3)
        fifths_weight: Weight of circle-of-fifths distance (default: 0.6)
        chromatic_weight: Weight of chromatic distance (default: 0.4)
        fifth_motion_bonus: Bonus for root motion by a fourth or fifth (default: 0.3)
        cadence_bonus: Bonus for ii-V, IV-V and V-I motion (default: 0.2)
        quality_change_penalty: Penalty when major/minor quality changes (default: 0.1)
        non_diatonic_pair_penalty: Penalty between two non-diatonic states (default: 0.4)
        use_secondary_dominants: Include V/x states (default: True)
        use_borrowed: Include borrowed-chord states (default: True)
    """

    beam_width: int = 8
    conservative_beam_width: int = 4
    template_weight: float = 3.0
    bass_root_bonus: float = 0.5
    bass_third_bonus: float = 0.2
    bass_fifth_bonus: float = 0.15
    in_key_bonus: float = 0.2
    low_energy_ratio: float = 0.2
    low_energy_penalty: float = 1.0
    soft_energy_ratio: float = 0.4
    soft_energy_penalty: float = 0.3
    emission_floor: float = 0.5
    stay_bonus: float = 0.5
    change_penalty: float = 0.3
    fifths_weight: float = 0.6
    chromatic_weight: float = 0.4
    fifth_motion_bonus: float = 0.3
    cadence_bonus: float = 0.2
    quality_change_penalty: float = 0.1
    non_diatonic_pair_penalty: float = 0.4
    use_secondary_dominants: bool = True
    use_borrowed: bool = True


@dataclass
class SegmenterConfig:
    """Configuration for the bass-anchored segmenter.

    Attributes:
        beat_tolerance_frames: Frames either side of a beat that may open a segment (default: 1)
        min_duration_seconds: Floor of the minimum segment duration (default: 0.5)
        min_duration_beats: Minimum segment duration in beats (default: 1.0)
        chroma_change_threshold: Chroma distance that commits a short segment (default: 0.45)
        energy_ratio: Frames below this share of P70 cannot open segments (default: 0.3)
        short_keep_score: Fit score that keeps a too-short segment (default: 45)
        chromatic_min_score: Fit score needed by the chromatic fallback (default: 60)
        chromatic_strong_score: Fit score that admits an unexplained chromatic (default: 80)
        chromatic_penalty: Score subtracted from chromatic fallbacks (default: 30)
        third_detect_ratio: Margin deciding which third is present (default: 1.3)
        quality_fix_ratio: Margin that overrides the candidate's quality (default: 1.5)
        priorities: Candidate priority per theory category
    """

    beat_tolerance_frames: int = 1
    min_duration_seconds: float = 0.5
    min_duration_beats: float = 1.0
    chroma_change_threshold: float = 0.45
    energy_ratio: float = 0.3
    short_keep_score: float = 45.0
    chromatic_min_score: float = 60.0
    chromatic_strong_score: float = 80.0
    chromatic_penalty: float = 30.0
    third_detect_ratio: float = 1.3
    quality_fix_ratio: float = 1.5
    priorities: Dict[str, float] = field(default_factory=lambda: {
        "diatonic_root": 100.0,
        "major_mediant": 90.0,
        "major_mediant_inv1": 82.0,
        "diatonic_inv1": 85.0,
        "diatonic_inv2": 80.0,
        "secondary_dominant": 75.0,
        "secondary_dominant_inv1": 70.0,
        "borrowed": 65.0,
        "borrowed_inv1": 60.0,
        "chromatic": 20.0,
    })


@dataclass
class RefinementConfig:
    """Configuration for the refinement passes.

    Attributes:
        chromatic_short_seconds: Chromatic chords shorter than this need high confidence (default: 0.8)
        chromatic_strong_confidence: Confidence that keeps a short chromatic chord (default: 0.95)
        unreasonable_min_seconds: Duration needed by an unexplained chromatic chord (default: 1.5)
        unreasonable_min_confidence: Confidence needed by an unexplained chromatic chord (default: 0.90)
        smoothing_max_confidence: Light smoothing only drops chords below this (default: 0.60)
        slash_secondary_strength: Chroma share for a secondary-dominant bass (default: 0.15)
        slash_chromatic_strength: Chroma share for a chromatic bass (default: 0.20)
        extension_window: Frames either side averaged for extension evidence (default: 2)
        extension_sensitivity: Divides every extension threshold (default: 1.0)
        min_duration_seconds: Floor of the finalize minimum duration (default: 0.5)
        min_duration_beats: Finalize minimum duration in beats (default: 0.5)
        weak_energy_ratio: Share of median energy below which a chord is weak (default: 0.85)
        snap_tolerance_beats: Beat-grid snap tolerance (default: 0.35)
        pattern_min_length: Shortest recurring root pattern (default: 2)
        pattern_max_length: Longest recurring root pattern (default: 6)
        pattern_min_repeats: Occurrences that make a pattern strong (default: 3)
        pattern_fix_max_confidence: Only chords below this may be corrected (default: 0.75)
        outlier_margin: Confidence gap below both neighbours for smoothing (default: 0.10)
        enable_style_filters: Apply style-dependent diatonic enforcement (default: True)
    """

    chromatic_short_seconds: float = 0.8
    chromatic_strong_confidence: float = 0.95
    unreasonable_min_seconds: float = 1.5
    unreasonable_min_confidence: float = 0.90
    smoothing_max_confidence: float = 0.60
    slash_secondary_strength: float = 0.15
    slash_chromatic_strength: float = 0.20
    extension_window: int = 2
    extension_sensitivity: float = 1.0
    min_duration_seconds: float = 0.5
    min_duration_beats: float = 0.5
    weak_energy_ratio: float = 0.85
    snap_tolerance_beats: float = 0.35
    pattern_min_length: int = 2
    pattern_max_length: int = 6
    pattern_min_repeats: int = 3
    pattern_fix_max_confidence: float = 0.75
    outlier_margin: float = 0.10
    enable_style_filters: bool = True


@dataclass
class StyleConfig:
    """Configuration for the style profile that tunes filter aggressiveness.

    Attributes:
        easy_min_diatonic: Diatonic share needed for easy_pop (default: 0.80)
        easy_max_chromatic: Chromatic share allowed for easy_pop (default: 0.10)
        easy_max_borrowed: Borrowed share allowed for easy_pop (default: 0.18)
        easy_max_extensions: Extended-chord share allowed for easy_pop (default: 0.25)
        easy_max_chords_per_bar: Harmonic density allowed for easy_pop (default: 2.2)
        colorful_min_diatonic: Diatonic share needed for colorful_pop (default: 0.60)
        colorful_max_chromatic: Chromatic share allowed for colorful_pop (default: 0.30)
        colorful_max_chords_per_bar: Harmonic density allowed for colorful_pop (default: 3.5)
        beats_per_bar: Beats per bar for the density measure (default: 4)
    """

    easy_min_diatonic: float = 0.80
    easy_max_chromatic: float = 0.10
    easy_max_borrowed: float = 0.18
    easy_max_extensions: float = 0.25
    easy_max_chords_per_bar: float = 2.2
    colorful_min_diatonic: float = 0.60
    colorful_max_chromatic: float = 0.30
    colorful_max_chords_per_bar: float = 3.5
    beats_per_bar: int = 4


@dataclass
class TonicConfig:
    """Configuration for tonic re-validation from the resolved chords.

    Attributes:
        min_events: Timelines shorter than this are not re-validated (default: 4)
        min_fit: Share of chords diatonic to a candidate key (default: 0.65)
        duration_weight: Score per second of root duration (default: 5)
        count_weight: Score per occurrence of the root (default: 3)
        fourth_cadence: IV-I cadence credit (default: 15)
        fifth_cadence: V-I cadence credit (default: 10)
        two_five_one: ii-V-I credit (default: 20)
        four_five_one: IV-V-I credit (default: 25)
        opening_bonus: Credit when the first chord is the candidate tonic (default: 40)
        closing_bonus: Credit when the last chord is the candidate tonic (default: 25)
        dominant_root_bonus: Credit for the longest-sounding root (default: 30)
        override_margin: Score gain needed to replace the key (default: 15)
        opening_preference: Opening-chord candidate wins within this gap (default: 10)
        subdominant_anchored_gain: I-to-IV gain needed when the song opens on I (default: 40)
        subdominant_anchored_fit: I-to-IV fit needed when the song opens on I (default: 0.90)
        subdominant_gain: I-to-IV gain needed otherwise (default: 25)
        subdominant_fit: I-to-IV fit needed otherwise (default: 0.85)
        max_key_changes: Key replacements allowed per analysis (default: 1)
    """

    min_events: int = 4
    min_fit: float = 0.65
    duration_weight: float = 5.0
    count_weight: float = 3.0
    fourth_cadence: float = 15.0
    fifth_cadence: float = 10.0
    two_five_one: float = 20.0
    four_five_one: float = 25.0
    opening_bonus: float = 40.0
    closing_bonus: float = 25.0
    dominant_root_bonus: float = 30.0
    override_margin: float = 15.0
    opening_preference: float = 10.0
    subdominant_anchored_gain: float = 40.0
    subdominant_anchored_fit: float = 0.90
    subdominant_gain: float = 25.0
    subdominant_fit: float = 0.85
    max_key_changes: int = 1


@dataclass
class AnalysisConfig:
    """Top-level configuration consumed by ChordPipeline."""

    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    tempo: TempoConfig = field(default_factory=TempoConfig)
    profile: ProfileConfig = field(default_factory=ProfileConfig)
    key: KeyConfig = field(default_factory=KeyConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    refinement: RefinementConfig = field(default_factory=RefinementConfig)
    style: StyleConfig = field(default_factory=StyleConfig)
    tonic: TonicConfig = field(default_factory=TonicConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """
        Build a config from nested dictionaries (e.g. parsed JSON).

        Unknown sections or keys raise ValueError so typos surface early.

        Args:
            data: Mapping of section name to a mapping of overrides

        Returns:
            AnalysisConfig with defaults for everything not given
        """
        config = cls()
        sections = {f.name for f in fields(config)}
        for section_name, overrides in (data or {}).items():
            if section_name not in sections:
                raise ValueError(f"Unknown config section: {section_name}")
            section = getattr(config, section_name)
            known = {f.name: f for f in fields(section)}
            for key, value in (overrides or {}).items():
                if key not in known:
                    raise ValueError(f"Unknown option {section_name}.{key}")
                if isinstance(getattr(section, key), tuple) and isinstance(value, list):
                    value = _to_tuple(value)
                setattr(section, key, value)
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Nested dictionary of every setting."""
        return {
            f.name: _section_to_dict(getattr(self, f.name))
            for f in fields(self)
        }


def _to_tuple(value):
    if isinstance(value, list):
        return tuple(_to_tuple(v) for v in value)
    return value


def _section_to_dict(section) -> Dict[str, Any]:
    if not is_dataclass(section):
        return section
    return {f.name: getattr(section, f.name) for f in fields(section)}
