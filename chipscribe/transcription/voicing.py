"""Voicing classification: decide which frames carry a pitch."""

import logging
from dataclasses import dataclass, replace
from typing import List, Tuple

import numpy as np

from ..core.constants import (
    ADAPTIVE_TRIGGER_FULL_MIX,
    ADAPTIVE_TRIGGER_MONO,
    FULL_MIX_CLARITY_FACTOR,
    FULL_MIX_RMS_FACTOR,
    GAP_FILL_FRAMES_MONO,
    GAP_FILL_JUMP_FULL_MIX,
    GAP_FILL_JUMP_MONO,
    GAP_FILL_SECONDS_FULL_MIX,
)
from ..core.models import Frame
from ..core.music import clamp, freq_to_midi_float, midi_to_freq
from ..core.options import AnalysisOptions

logger = logging.getLogger(__name__)


@dataclass
class VoicingThresholds:
    rms: float
    clarity: float


@dataclass
class VoicingStats:
    """What the classifier did to reach its decision."""

    voiced_ratio: float = 0.0
    initial_voiced_ratio: float = 0.0
    thresholds: VoicingThresholds = None
    adaptive_used: bool = False
    gap_filled_frames: int = 0

    @property
    def recovered(self) -> bool:
        return self.adaptive_used or self.gap_filled_frames > 0


class VoicingClassifier:
    """
    Classify frames as voiced or rest.

    A frame is voiced when its RMS and clarity reach the thresholds and its
    pitch lies inside the band. If too little of the buffer ends up voiced
    the thresholds are re-derived from the observed distributions and every
    frame is classified again, once. Short interior rest runs between two
    close pitches are then filled by linear interpolation.
    """

    def __init__(self, options: AnalysisOptions, hop_seconds: float):
        """
        Args:
            options: Sanitized analysis options
            hop_seconds: Time between frames
        """
        self.options = options
        self.hop_seconds = hop_seconds
        self.full_mix = options.full_mix

    def base_thresholds(self) -> VoicingThresholds:
        """Thresholds from the options, relaxed for full-mix confidence values."""
        if self.full_mix:
            return VoicingThresholds(
                rms=self.options.rms_threshold * FULL_MIX_RMS_FACTOR,
                clarity=self.options.clarity_threshold * FULL_MIX_CLARITY_FACTOR,
            )
        return VoicingThresholds(rms=self.options.rms_threshold, clarity=self.options.clarity_threshold)

    def _in_band(self, frame: Frame) -> bool:
        hz = frame.pitch_hz
        return hz is not None and self.options.min_hz <= hz <= self.options.max_hz

    def classify(self, frames: List[Frame], thresholds: VoicingThresholds) -> List[Frame]:
        """Return new frames with is_rest and midi_float decided."""
        out = []
        for frame in frames:
            voiced = (
                frame.rms >= thresholds.rms
                and frame.clarity >= thresholds.clarity
                and self._in_band(frame)
            )
            out.append(replace(
                frame,
                is_rest=not voiced,
                midi_float=freq_to_midi_float(frame.pitch_hz) if voiced else None,
            ))
        return out

    def adaptive_thresholds(self, frames: List[Frame], base: VoicingThresholds) -> VoicingThresholds:
        """Thresholds derived from percentiles of the observed RMS and clarity."""
        rms = np.array([f.rms for f in frames])
        pitched = [f.clarity for f in frames if self._in_band(f)]
        clarity = np.array(pitched) if pitched else np.array([base.clarity])

        if self.full_mix:
            rms_t = np.percentile(rms, 35) * 0.9
            clarity_t = clamp(np.percentile(clarity, 35) * 0.9, 0.05, base.clarity)
        else:
            rms_t = np.percentile(rms, 28) * 0.75
            clarity_t = clamp(np.percentile(clarity, 35) * 0.9, 0.35, base.clarity)
        rms_t = clamp(rms_t, 1e-4, max(base.rms, 1e-4))
        return VoicingThresholds(rms=float(rms_t), clarity=float(clarity_t))

    def gap_fill_limit(self) -> int:
        """Longest rest run (in frames) eligible for interpolation."""
        if self.full_mix:
            return max(1, int(round(GAP_FILL_SECONDS_FULL_MIX / self.hop_seconds)))
        return GAP_FILL_FRAMES_MONO

    def fill_gaps(self, frames: List[Frame]) -> Tuple[List[Frame], int]:
        """
        Interpolate pitch across short interior rest runs.

        Returns:
            Tuple of (frames, number of frames converted to voiced)
        """
        max_run = self.gap_fill_limit()
        max_jump = GAP_FILL_JUMP_FULL_MIX if self.full_mix else GAP_FILL_JUMP_MONO
        out = list(frames)
        filled = 0

        i = 0
        n = len(out)
        while i < n:
            if not out[i].is_rest:
                i += 1
                continue
            start = i
            while i < n and out[i].is_rest:
                i += 1
            end = i  # exclusive
            run = end - start
            if start == 0 or end == n or run > max_run:
                continue

            before, after = out[start - 1], out[end]
            if before.midi_float is None or after.midi_float is None:
                continue
            if abs(after.midi_float - before.midi_float) > max_jump:
                continue

            for k in range(run):
                t = (k + 1) / (run + 1)
                midi = before.midi_float + (after.midi_float - before.midi_float) * t
                out[start + k] = replace(
                    out[start + k],
                    is_rest=False,
                    midi_float=midi,
                    pitch_hz=midi_to_freq(midi),
                )
            filled += run

        return out, filled

    def run(self, frames: List[Frame]) -> Tuple[List[Frame], VoicingStats]:
        """
        Classify, optionally adapt thresholds, then fill short gaps.

        Args:
            frames: Frames from the FrameAnalyzer

        Returns:
            Tuple of (classified frames, VoicingStats)
        """
        stats = VoicingStats()
        thresholds = self.base_thresholds()
        if not frames:
            stats.thresholds = thresholds
            return [], stats

        classified = self.classify(frames, thresholds)
        ratio = _voiced_ratio(classified)
        stats.initial_voiced_ratio = ratio

        trigger = ADAPTIVE_TRIGGER_FULL_MIX if self.full_mix else ADAPTIVE_TRIGGER_MONO
        if ratio < trigger:
            adapted = self.adaptive_thresholds(frames, thresholds)
            if adapted.rms < thresholds.rms or adapted.clarity < thresholds.clarity:
                reclassified = self.classify(frames, adapted)
                new_ratio = _voiced_ratio(reclassified)
                if new_ratio > ratio:
                    logger.info(
                        "Voiced ratio %.2f below %.2f, relaxed thresholds to rms=%.4f clarity=%.3f",
                        ratio, trigger, adapted.rms, adapted.clarity,
                    )
                    classified, ratio, thresholds = reclassified, new_ratio, adapted
                    stats.adaptive_used = True

        classified, filled = self.fill_gaps(classified)
        stats.gap_filled_frames = filled
        stats.voiced_ratio = _voiced_ratio(classified)
        stats.thresholds = thresholds
        logger.debug(
            "Voicing: %.2f voiced (%d frames gap-filled, adaptive=%s)",
            stats.voiced_ratio, filled, stats.adaptive_used,
        )
        return classified, stats


def _voiced_ratio(frames: List[Frame]) -> float:
    if not frames:
        return 0.0
    return sum(1 for f in frames if not f.is_rest) / len(frames)
