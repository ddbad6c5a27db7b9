"""Predominant-pitch estimators for full-mix material.

A backend turns a mono signal into a per-hop pitch/confidence track,
optionally with tempo and key estimates. ``LibrosaPitchBackend`` is the
precise one; ``BuiltinPitchBackend`` is a deterministic numpy-only
fallback. ``estimate_predominant`` runs the first and falls back to the
second when it fails.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import librosa

from ..core.constants import FRAME_SIZE, HOP_SIZE
from ..inference.key import KeyDetector
from .pitch import AutocorrelationPitchDetector, frame_signal

logger = logging.getLogger(__name__)


@dataclass
class PredominantResult:
    """Per-hop pitch track from a predominant-pitch backend."""

    backend: str
    hop_seconds: float
    pitch_hz: List[float] = field(default_factory=list)  # 0 where unvoiced
    pitch_confidence: List[float] = field(default_factory=list)
    bpm: Optional[float] = None
    bpm_confidence: Optional[float] = None
    key: Optional[str] = None
    scale: Optional[str] = None
    key_strength: Optional[float] = None
    error: Optional[str] = None  # why the precise backend was not used


class PitchBackend(ABC):
    """Interface for predominant-pitch estimators."""

    name = "base"

    def __init__(self, frame_size: int = FRAME_SIZE, hop_size: int = HOP_SIZE):
        self.frame_size = frame_size
        self.hop_size = hop_size

    @abstractmethod
    def estimate(
        self, signal: np.ndarray, sr: int, min_hz: float, max_hz: float
    ) -> PredominantResult:
        """
        Estimate the predominant pitch of a mono signal.

        Args:
            signal: Mono audio
            sr: Sample rate
            min_hz: Lowest pitch of interest
            max_hz: Highest pitch of interest

        Returns:
            PredominantResult
        """


class BuiltinPitchBackend(PitchBackend):
    """Autocorrelation pitch track, no dependencies beyond numpy."""

    name = "builtin"

    def estimate(
        self, signal: np.ndarray, sr: int, min_hz: float, max_hz: float
    ) -> PredominantResult:
        framed = frame_signal(signal, self.frame_size, self.hop_size)
        pitch, clarity = AutocorrelationPitchDetector().detect(framed, sr)
        out_of_band = (pitch < min_hz) | (pitch > max_hz)
        pitch[out_of_band] = 0.0
        clarity[out_of_band] = 0.0
        return PredominantResult(
            backend=self.name,
            hop_seconds=self.hop_size / sr,
            pitch_hz=pitch.tolist(),
            pitch_confidence=clarity.tolist(),
        )


class LibrosaPitchBackend(PitchBackend):
    """pYIN pitch track with beat-tracker tempo and chroma key estimates."""

    name = "librosa"

    def estimate(
        self, signal: np.ndarray, sr: int, min_hz: float, max_hz: float
    ) -> PredominantResult:
        y = np.asarray(signal, dtype=np.float32)

        # pYIN needs at least two periods of fmin inside half a frame
        fmin = max(min_hz, 1.05 * sr / (self.frame_size // 2 - 1))
        fmax = min(max_hz, sr / 2.0 * 0.95)
        if fmin >= fmax:
            raise ValueError(f"Empty pitch band for pYIN: {fmin:.1f}-{fmax:.1f} Hz")

        f0, voiced_flag, voiced_prob = librosa.pyin(
            y,
            fmin=fmin,
            fmax=fmax,
            sr=sr,
            frame_length=self.frame_size,
            hop_length=self.hop_size,
        )
        f0 = np.nan_to_num(f0, nan=0.0)
        confidence = np.where(voiced_flag, np.nan_to_num(voiced_prob, nan=0.0), 0.0)

        tempo, _ = librosa.beat.beat_track(y=y, sr=sr, hop_length=self.hop_size)
        # Handle tempo as array (newer librosa versions)
        if isinstance(tempo, np.ndarray):
            tempo = float(tempo[0]) if len(tempo) > 0 else 0.0

        key, scale, strength = KeyDetector().detect_from_audio(y, sr)

        return PredominantResult(
            backend=self.name,
            hop_seconds=self.hop_size / sr,
            pitch_hz=f0.tolist(),
            pitch_confidence=confidence.tolist(),
            bpm=float(tempo) if tempo and np.isfinite(tempo) and tempo > 0 else None,
            key=key,
            scale=scale,
            key_strength=strength,
        )


def estimate_predominant(
    signal: np.ndarray,
    sr: int,
    min_hz: float,
    max_hz: float,
    backend: Optional[PitchBackend] = None,
    fallback: Optional[PitchBackend] = None,
) -> PredominantResult:
    """
    Run the precise backend, falling back to the built-in one on failure.

    Any exception raised by the precise backend is logged and its message
    is attached to the fallback result's ``error`` field.

    Args:
        signal: Mono audio
        sr: Sample rate
        min_hz: Lowest pitch of interest
        max_hz: Highest pitch of interest
        backend: Precise backend (default: LibrosaPitchBackend)
        fallback: Fallback backend (default: BuiltinPitchBackend)

    Returns:
        PredominantResult
    """
    backend = backend or LibrosaPitchBackend()
    fallback = fallback or BuiltinPitchBackend()
    try:
        return backend.estimate(signal, sr, min_hz, max_hz)
    except Exception as exc:
        reason = f"{backend.name}: {exc}"
        logger.warning("Predominant-pitch backend failed, using %s fallback (%s)", fallback.name, reason)
        result = fallback.estimate(signal, sr, min_hz, max_hz)
        result.error = reason
        return result
