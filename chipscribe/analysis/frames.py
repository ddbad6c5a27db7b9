"""Frame analyzer: per-hop energy, pitch and clarity."""

import logging
from typing import List

import numpy as np

from ..core.constants import FRAME_SIZE, HOP_SIZE
from ..core.errors import EstimatorError
from ..core.models import Frame
from ..core.music import clamp, freq_to_midi_float
from .backends import PredominantResult
from .pitch import (
    AutocorrelationPitchDetector,
    HarmonicSumEstimator,
    frame_rms,
    frame_signal,
)

logger = logging.getLogger(__name__)

# Full-mix fallback prefers candidates at or above this register
REGISTER_BONUS_HZ = 180.0
REGISTER_BONUS = 0.1


def register_bonus(hz: float) -> float:
    """Log-frequency bonus reaching its maximum at REGISTER_BONUS_HZ and above."""
    if hz <= 0:
        return 0.0
    return REGISTER_BONUS * clamp(1.0 + np.log2(hz / REGISTER_BONUS_HZ), 0.0, 1.0)


class FrameAnalyzer:
    """Splits a mono signal into frames and measures each one."""

    def __init__(
        self,
        sr: int,
        frame_size: int = FRAME_SIZE,
        hop_size: int = HOP_SIZE,
        min_hz: float = 200.0,
        max_hz: float = 2500.0,
    ):
        """
        Initialize the analyzer.

        Args:
            sr: Sample rate
            frame_size: Samples per analysis frame
            hop_size: Samples between frame starts
            min_hz: Lowest candidate pitch for the full-mix estimator
            max_hz: Highest candidate pitch for the full-mix estimator
        """
        self.sr = sr
        self.frame_size = frame_size
        self.hop_size = hop_size
        self.min_hz = min_hz
        self.max_hz = max_hz
        self.detector = AutocorrelationPitchDetector()

    @property
    def hop_seconds(self) -> float:
        return self.hop_size / self.sr

    def _build_frames(self, rms: np.ndarray, pitch: np.ndarray, clarity: np.ndarray) -> List[Frame]:
        frames = []
        for i in range(len(rms)):
            hz = float(pitch[i])
            has_pitch = np.isfinite(hz) and hz > 0
            frames.append(
                Frame(
                    time_sec=i * self.hop_size / self.sr,
                    duration_sec=self.hop_seconds,
                    rms=float(rms[i]),
                    clarity=float(clarity[i]) if np.isfinite(clarity[i]) else 0.0,
                    pitch_hz=hz if has_pitch else None,
                    midi_float=freq_to_midi_float(hz) if has_pitch else None,
                )
            )
        return frames

    def analyze_monophonic(self, signal: np.ndarray) -> List[Frame]:
        """One autocorrelation pitch/clarity estimate per frame."""
        framed = frame_signal(signal, self.frame_size, self.hop_size)
        pitch, clarity = self.detector.detect(framed, self.sr)
        return self._build_frames(frame_rms(framed), pitch, clarity)

    def analyze_full_mix(self, emphasized: np.ndarray, raw: np.ndarray) -> List[Frame]:
        """
        Predominant pitch per frame for material with accompaniment.

        The harmonic-summation estimator runs on the lead-emphasized
        signal. Frames where it finds nothing viable fall back to the
        autocorrelation detector on both the emphasized and raw signals,
        keeping whichever scores higher after a register bonus. Energy is
        measured on the raw signal.

        Args:
            emphasized: Output of ``lead_emphasis`` for the same signal
            raw: Mono signal

        Returns:
            List of Frame, one per hop
        """
        framed = frame_signal(emphasized, self.frame_size, self.hop_size)
        raw_framed = frame_signal(raw, self.frame_size, self.hop_size)

        estimator = HarmonicSumEstimator(self.sr, self.min_hz, self.max_hz)
        pitch, clarity, viable = estimator.estimate(framed)

        fallback = np.flatnonzero(~viable)
        if len(fallback):
            emph_pitch, emph_clarity = self.detector.detect(framed[fallback], self.sr)
            raw_pitch, raw_clarity = self.detector.detect(raw_framed[fallback], self.sr)
            for j, idx in enumerate(fallback):
                emph_score = emph_clarity[j] + register_bonus(emph_pitch[j]) if emph_pitch[j] > 0 else -1.0
                raw_score = raw_clarity[j] + register_bonus(raw_pitch[j]) if raw_pitch[j] > 0 else -1.0
                if emph_score < 0 and raw_score < 0:
                    continue
                if emph_score >= raw_score:
                    pitch[idx], clarity[idx] = emph_pitch[j], emph_clarity[j]
                else:
                    pitch[idx], clarity[idx] = raw_pitch[j], raw_clarity[j]

        logger.debug(
            "Full-mix frames: %d total, %d harmonic-sum, %d fallback",
            len(pitch), int(np.sum(viable)), len(fallback),
        )
        return self._build_frames(frame_rms(raw_framed), pitch, clarity)

    def frames_from_predominant(self, signal: np.ndarray, result: PredominantResult) -> List[Frame]:
        """
        Build frames from an external predominant-pitch result.

        The external pitch track is resampled onto this analyzer's hop grid
        by nearest time; energy is still measured on the signal.

        Raises:
            EstimatorError: If the result is malformed
        """
        hop = result.hop_seconds
        try:
            hop_ok = hop is not None and bool(np.isfinite(hop)) and hop > 0
            pitch_track = np.asarray(result.pitch_hz, dtype=np.float64).reshape(-1)
            conf_track = np.asarray(result.pitch_confidence, dtype=np.float64).reshape(-1)
        except (TypeError, ValueError) as exc:
            raise EstimatorError(f"{result.backend}: malformed track ({exc})") from exc
        if not hop_ok:
            raise EstimatorError(f"{result.backend}: invalid hop {hop!r}")
        if pitch_track.size == 0:
            raise EstimatorError(f"{result.backend}: empty pitch track")
        if pitch_track.size != conf_track.size:
            raise EstimatorError(
                f"{result.backend}: pitch/confidence length mismatch "
                f"({pitch_track.size} vs {conf_track.size})"
            )

        framed = frame_signal(signal, self.frame_size, self.hop_size)
        times = np.arange(framed.shape[0]) * self.hop_seconds
        idx = np.clip(np.round(times / hop).astype(int), 0, pitch_track.size - 1)

        pitch = np.nan_to_num(pitch_track[idx], nan=0.0, posinf=0.0, neginf=0.0)
        clarity = np.clip(np.nan_to_num(conf_track[idx], nan=0.0), 0.0, 1.0)
        pitch[pitch < 0] = 0.0
        return self._build_frames(frame_rms(framed), pitch, clarity)
