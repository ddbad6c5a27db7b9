"""Recommend analysis settings from the audio itself."""

import logging
from typing import List, Optional

import numpy as np

from ..core.models import Frame
from ..core.music import clamp
from ..core.options import AnalysisOptions, SuggestedAnalysisSettings
from ..input.signal import downmix_to_mono, validate_signal
from .backends import PredominantResult
from .frames import FrameAnalyzer
from .tempo import TempoAnalyzer, fold_bpm, triplet_feel_from_onsets

logger = logging.getLogger(__name__)

# Band searched while probing the material
SCAN_MIN_HZ = 60.0
SCAN_MAX_HZ = 3000.0

MONOPHONIC_COVERAGE = 0.55
MONOPHONIC_CLARITY = 0.8


def recommend_mode(frames: List[Frame]) -> str:
    """
    "monophonic" when most energetic frames carry a clear single pitch.

    Energetic frames are those above both an absolute floor and the 30th
    RMS percentile. Coverage is the share of them with clarity >= 0.8.
    """
    if not frames:
        return "monophonic"
    rms = np.array([f.rms for f in frames])
    clarity = np.array([f.clarity for f in frames])
    energetic = rms >= max(0.003, float(np.percentile(rms, 30)))
    if not np.any(energetic):
        return "monophonic"
    coverage = float(np.mean(clarity[energetic] >= MONOPHONIC_CLARITY))
    median_clarity = float(np.median(clarity[energetic]))
    logger.debug("Mode scan: coverage %.2f, median clarity %.2f", coverage, median_clarity)
    if coverage >= MONOPHONIC_COVERAGE and median_clarity >= MONOPHONIC_CLARITY:
        return "monophonic"
    return "full_mix"


def _pitch_band(frames: List[Frame], rms_floor: float, mode: str):
    """Frequency band around the clearly pitched frames, widened by half an octave."""
    defaults = (200.0, 2500.0) if mode == "monophonic" else (150.0, 1800.0)
    pitches = np.array([
        f.pitch_hz for f in frames
        if f.pitch_hz and f.rms >= rms_floor and f.clarity >= MONOPHONIC_CLARITY
    ])
    if len(pitches) < 5:
        return defaults
    lo = float(np.percentile(pitches, 5)) / np.sqrt(2.0)
    hi = float(np.percentile(pitches, 95)) * np.sqrt(2.0)
    if mode == "monophonic":
        return clamp(lo, 60.0, 400.0), clamp(hi, 800.0, 3000.0)
    return clamp(lo, 120.0, 400.0), clamp(hi, 900.0, 2000.0)


def suggest_settings(
    audio: np.ndarray,
    sr: int,
    options: Optional[AnalysisOptions] = None,
    predominant: Optional[PredominantResult] = None,
) -> SuggestedAnalysisSettings:
    """
    Recommend tempo, grid, mode, thresholds and band for a recording.

    Args:
        audio: Mono or (channels, samples) PCM
        sr: Sample rate
        options: Current options (unused fields are left to the caller)
        predominant: Optional external estimator result; its BPM is used
            when present and plausible

    Returns:
        SuggestedAnalysisSettings

    Raises:
        InvalidAudioError: If the buffer or sample rate is unusable
    """
    validate_signal(audio, sr)
    options = (options or AnalysisOptions()).sanitized()
    signal = downmix_to_mono(audio)

    tempo_analyzer = TempoAnalyzer()
    flux = tempo_analyzer.onset_envelope(signal, sr)
    bpm, bpm_confidence = tempo_analyzer.estimate_bpm(flux, sr)
    bpm_source = "builtin"
    if (
        predominant is not None
        and not predominant.error
        and predominant.bpm is not None
        and np.isfinite(predominant.bpm)
        and predominant.bpm > 0
    ):
        bpm = fold_bpm(predominant.bpm)
        bpm_confidence = float(predominant.bpm_confidence or 0.0)
        bpm_source = predominant.backend
    bpm = round(bpm, 1)

    triplets = triplet_feel_from_onsets(tempo_analyzer.onset_times(flux, sr), bpm)
    if triplets:
        grid = "eighth"
    else:
        grid = "sixteenth" if bpm <= 100 else "eighth"

    frames = FrameAnalyzer(sr, min_hz=SCAN_MIN_HZ, max_hz=SCAN_MAX_HZ).analyze_monophonic(signal)
    mode = recommend_mode(frames)

    rms = np.array([f.rms for f in frames]) if frames else np.zeros(1)
    noise_floor = float(np.percentile(rms, 20))
    peak = float(np.percentile(rms, 95))
    clarity = np.array([f.clarity for f in frames]) if frames else np.zeros(1)

    if mode == "monophonic":
        rms_threshold = clamp(max(noise_floor * 2.0, peak * 0.08), 0.005, 0.06)
        clarity_threshold = 0.75 if float(np.median(clarity)) >= 0.85 else 0.65
        min_note_ms = 80.0 if bpm < 140 else 60.0
    else:
        rms_threshold = clamp(max(noise_floor * 1.5, peak * 0.05), 0.003, 0.04)
        clarity_threshold = 0.5
        min_note_ms = 110.0
    min_hz, max_hz = _pitch_band(frames, rms_threshold, mode)

    suggestion = SuggestedAnalysisSettings(
        bpm=bpm,
        grid=grid,
        triplets=triplets,
        analysis_mode=mode,
        rms_threshold=round(rms_threshold, 4),
        clarity_threshold=clarity_threshold,
        min_hz=round(min_hz, 1),
        max_hz=round(max_hz, 1),
        min_note_ms=min_note_ms,
        bpm_confidence=bpm_confidence,
        bpm_source=bpm_source,
    )
    logger.debug("Suggested settings: %s", suggestion)
    return suggestion
