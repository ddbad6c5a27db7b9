"""Melody transcription pipeline.

samples -> frames -> voicing -> segments -> cleanup -> key -> scale snap
-> beat quantization -> melody steps.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..analysis.backends import PredominantResult
from ..analysis.frames import FrameAnalyzer
from ..core.constants import (
    HIGH_VOICED_RATIO,
    LOW_VOICED_RATIO_FULL_MIX,
    LOW_VOICED_RATIO_MONO,
    REST,
)
from ..core.errors import EstimatorError
from ..core.models import AnalyzeResult, MelodyStep, Segment
from ..core.options import AnalysisOptions
from ..inference.key import KeyDetector
from ..input.signal import downmix_to_mono, lead_emphasis, validate_signal
from ..processing.cleanup import SegmentCleanup
from ..processing.quantize import PitchSnapper, Quantizer
from .segmenter import Segmenter
from .voicing import VoicingClassifier

logger = logging.getLogger(__name__)

WARNING_LOW_MONO = "Large portions look like silence or breath, try lowering RMS threshold."
WARNING_LOW_FULL_MIX = (
    "Little predominant melody was found in this mix, try lowering the RMS or clarity threshold."
)
WARNING_DENSE = "Very dense voiced audio, if this is polyphonic audio transcription quality may be poor."
WARNING_ADAPTIVE = "Quiet or breathy passages were recovered with relaxed voicing thresholds."
WARNING_GAP_FILL = "Short dropouts were bridged by pitch interpolation."


def segments_to_melody(segments: Sequence[Segment]) -> List[MelodyStep]:
    """Melody steps from quantized segments, joining equal neighbours."""
    steps: List[MelodyStep] = []
    for seg in segments:
        note = REST if seg.is_rest else seg.note_name
        if steps and steps[-1].note == note:
            steps[-1].beats += seg.beats
        else:
            steps.append(MelodyStep(note=note, beats=seg.beats))
    return steps


class MelodyTranscriber:
    """Transcribe a single melodic line from a PCM buffer."""

    def __init__(self, options: Optional[AnalysisOptions] = None):
        """
        Initialize the transcriber.

        Args:
            options: Analysis options (defaults used when None)
        """
        self.options = (options or AnalysisOptions()).sanitized()

    def transcribe(
        self,
        audio: np.ndarray,
        sr: int,
        predominant: Optional[PredominantResult] = None,
    ) -> AnalyzeResult:
        """
        Transcribe audio to a quantized melody.

        Args:
            audio: Mono or (channels, samples) PCM
            sr: Sample rate
            predominant: Optional external pitch track used in full-mix mode

        Returns:
            AnalyzeResult

        Raises:
            InvalidAudioError: If the buffer or sample rate is unusable
        """
        validate_signal(audio, sr)
        opts = self.options
        signal = downmix_to_mono(audio)
        total_duration = len(signal) / sr

        analyzer = FrameAnalyzer(sr, min_hz=opts.min_hz, max_hz=opts.max_hz)
        estimator_error = None
        frame_source = "autocorrelation"
        frames = None

        if opts.full_mix:
            if predominant is not None:
                estimator_error = predominant.error
                try:
                    frames = analyzer.frames_from_predominant(signal, predominant)
                    frame_source = predominant.backend
                except EstimatorError as exc:
                    logger.warning("Ignoring external pitch track: %s", exc)
                    estimator_error = str(exc)
            if frames is None:
                frames = analyzer.analyze_full_mix(lead_emphasis(signal, sr), signal)
                frame_source = "harmonic_sum"
        else:
            frames = analyzer.analyze_monophonic(signal)
        logger.debug("%d frames from %s", len(frames), frame_source)

        classifier = VoicingClassifier(opts, analyzer.hop_seconds)
        frames, voicing = classifier.run(frames)

        segments = Segmenter().build(frames, total_duration)
        raw_count = len(segments)
        segments, cleanup_stats = SegmentCleanup(opts.min_note_ms, opts.full_mix).cleanup(
            segments, return_stats=True
        )

        key_info = KeyDetector().detect(segments)
        if opts.key_mode == "manual":
            key, scale = opts.key, opts.scale
        else:
            key, scale = key_info.root, key_info.scale

        snapper = PitchSnapper(
            key,
            scale,
            snap_enabled=opts.snap_enabled,
            tolerance_cents=opts.snap_tolerance_cents,
            full_mix=opts.full_mix,
            min_note_ms=opts.min_note_ms,
            min_hz=opts.min_hz,
            max_hz=opts.max_hz,
        )
        segments = snapper.snap_segments(segments)
        segments = Quantizer(opts.bpm, opts.grid, opts.triplets).quantize_segments(segments)
        melody = segments_to_melody(segments)

        warning = self._warning(voicing.voiced_ratio, voicing.adaptive_used, voicing.gap_filled_frames)
        debug = {
            "frame_source": frame_source,
            "frame_count": len(frames),
            "voiced_ratio": round(voicing.voiced_ratio, 4),
            "initial_voiced_ratio": round(voicing.initial_voiced_ratio, 4),
            "rms_threshold": voicing.thresholds.rms,
            "clarity_threshold": voicing.thresholds.clarity,
            "adaptive_thresholds": voicing.adaptive_used,
            "gap_filled_frames": voicing.gap_filled_frames,
            "raw_segments": raw_count,
            "clean_segments": cleanup_stats.final_count,
            "smoothing_window": cleanup_stats.smoothing_window,
            "key_confidence": round(key_info.confidence, 4),
            "estimator_error": estimator_error,
        }
        logger.debug("Transcribed %d steps in %s %s", len(melody), key, scale)

        return AnalyzeResult(
            melody=melody,
            segments=segments,
            suggested_key=key_info.root,
            suggested_scale=key_info.scale,
            key=key,
            scale=scale,
            warning=warning,
            estimator_error=estimator_error,
            debug=debug,
        )

    def _warning(self, voiced_ratio: float, adaptive: bool, gap_filled: int) -> Optional[str]:
        messages = []
        low = LOW_VOICED_RATIO_FULL_MIX if self.options.full_mix else LOW_VOICED_RATIO_MONO
        if voiced_ratio < low:
            messages.append(WARNING_LOW_FULL_MIX if self.options.full_mix else WARNING_LOW_MONO)
        elif voiced_ratio > HIGH_VOICED_RATIO:
            messages.append(WARNING_DENSE)
        if adaptive:
            messages.append(WARNING_ADAPTIVE)
        if gap_filled:
            messages.append(WARNING_GAP_FILL)
        return " ".join(messages) if messages else None


def analyze(
    audio: np.ndarray,
    sr: int,
    options: Optional[AnalysisOptions] = None,
    predominant: Optional[PredominantResult] = None,
) -> AnalyzeResult:
    """Transcribe audio with the given options. See MelodyTranscriber.transcribe."""
    return MelodyTranscriber(options).transcribe(audio, sr, predominant)
