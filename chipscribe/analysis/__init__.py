"""Analysis layer - Frame analysis, predominant pitch, tempo and settings."""

from .backends import (
    BuiltinPitchBackend,
    LibrosaPitchBackend,
    PitchBackend,
    PredominantResult,
    estimate_predominant,
)
from .frames import FrameAnalyzer
from .pitch import AutocorrelationPitchDetector, HarmonicSumEstimator, goertzel_power
from .settings import recommend_mode, suggest_settings
from .tempo import TempoAnalyzer, TempoInfo, fold_bpm, triplet_feel_from_onsets

__all__ = [
    "BuiltinPitchBackend",
    "LibrosaPitchBackend",
    "PitchBackend",
    "PredominantResult",
    "estimate_predominant",
    "FrameAnalyzer",
    "AutocorrelationPitchDetector",
    "HarmonicSumEstimator",
    "goertzel_power",
    "recommend_mode",
    "suggest_settings",
    "TempoAnalyzer",
    "TempoInfo",
    "fold_bpm",
    "triplet_feel_from_onsets",
]
