"""Core types, options and constants for chipscribe."""

from .constants import (
    DEFAULT_BPM,
    FRAME_SIZE,
    HOP_SIZE,
    KEY_NAMES,
    REST,
)
from .errors import EstimatorError, InvalidAudioError
from .models import (
    AnalyzeResult,
    Arrangement,
    ArrangementTrack,
    ContinuityResult,
    ContinuityStats,
    Frame,
    MelodyStep,
    Segment,
    TrackRole,
)
from .options import AnalysisOptions, ContinuityOptions, SuggestedAnalysisSettings

__all__ = [
    "DEFAULT_BPM",
    "FRAME_SIZE",
    "HOP_SIZE",
    "KEY_NAMES",
    "REST",
    "EstimatorError",
    "InvalidAudioError",
    "AnalyzeResult",
    "Arrangement",
    "ArrangementTrack",
    "ContinuityResult",
    "ContinuityStats",
    "Frame",
    "MelodyStep",
    "Segment",
    "TrackRole",
    "AnalysisOptions",
    "ContinuityOptions",
    "SuggestedAnalysisSettings",
]
