"""chipscribe - Hum-to-chiptune melody transcription and arrangement.

Architecture Layers:
    1. core/          - Types, options, constants and music helpers
    2. input/         - Audio loading and signal preparation
    3. analysis/      - Frame analysis, predominant pitch, tempo, settings
    4. transcription/ - Voicing, segmentation and the analyze pipeline
    5. processing/    - Segment cleanup and quantization
    6. inference/     - Key detection
    7. arrangement/   - Multi-track arrangement, continuity, tone presets
"""

__version__ = "0.1.0"

# Core types
from .core import (
    AnalysisOptions,
    AnalyzeResult,
    Arrangement,
    ArrangementTrack,
    ContinuityOptions,
    ContinuityResult,
    ContinuityStats,
    EstimatorError,
    InvalidAudioError,
    MelodyStep,
    Segment,
    SuggestedAnalysisSettings,
    TrackRole,
)

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import (
    BuiltinPitchBackend,
    LibrosaPitchBackend,
    PitchBackend,
    PredominantResult,
    estimate_predominant,
    suggest_settings,
)

# Transcription layer
from .transcription import MelodyTranscriber, analyze

# Inference layer
from .inference import KeyDetector, detect_key

# Processing layer
from .processing import Quantizer, SegmentCleanup

# Arrangement layer
from .arrangement import (
    TonePreset,
    apply_continuity,
    apply_continuity_to_melody,
    build_arrangement,
    tone_parameters,
)

__all__ = [
    # Core
    "AnalysisOptions",
    "AnalyzeResult",
    "Arrangement",
    "ArrangementTrack",
    "ContinuityOptions",
    "ContinuityResult",
    "ContinuityStats",
    "EstimatorError",
    "InvalidAudioError",
    "MelodyStep",
    "Segment",
    "SuggestedAnalysisSettings",
    "TrackRole",
    # Input
    "AudioLoader",
    # Analysis
    "BuiltinPitchBackend",
    "LibrosaPitchBackend",
    "PitchBackend",
    "PredominantResult",
    "estimate_predominant",
    "suggest_settings",
    # Transcription
    "MelodyTranscriber",
    "analyze",
    # Inference
    "KeyDetector",
    "detect_key",
    # Processing
    "Quantizer",
    "SegmentCleanup",
    # Arrangement
    "TonePreset",
    "apply_continuity",
    "apply_continuity_to_melody",
    "build_arrangement",
    "tone_parameters",
]
