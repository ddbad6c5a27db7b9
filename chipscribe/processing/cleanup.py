"""Segment cleanup - Merge, absorb, de-glitch and smooth segments.

Passes, in the order ``SegmentCleanup.cleanup`` applies them:
- Tiny-segment merging (short gaps and blips between equal pitches)
- Short-segment absorption (anything still under the minimum length)
- De-glitching of isolated outlier pitches (full mix only)
- Median smoothing of the voiced pitch contour (full mix only)

Every pass returns new Segment objects and leaves its input untouched.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import median_filter

from ..core.constants import DEGLITCH_MIN_DEVIATION, DEGLITCH_NEIGHBOR_TOLERANCE
from ..core.models import Segment
from ..core.music import midi_to_note_name


@dataclass
class CleanupConfig:
    """Configuration for segment cleanup operations.

    Attributes:
        min_note_ms: Segments shorter than this are merged or absorbed (default: 80)
        full_mix: Enable de-glitching and contour smoothing (default: False)
        deglitch_max_factor: De-glitch segments up to this multiple of min_note_ms (default: 2.0)
        deglitch_neighbor_tolerance: Max semitones between the two neighbours (default: 2)
        deglitch_min_deviation: Min semitones from the segment to each neighbour (default: 4)
        jumpiness_percentile: Percentile of interval sizes used to pick the window (default: 75)
        jumpy_interval: Intervals at or above this use the wide window (default: 3)
    """

    min_note_ms: float = 80.0
    full_mix: bool = False
    deglitch_max_factor: float = 2.0
    deglitch_neighbor_tolerance: int = DEGLITCH_NEIGHBOR_TOLERANCE
    deglitch_min_deviation: int = DEGLITCH_MIN_DEVIATION
    jumpiness_percentile: float = 75.0
    jumpy_interval: float = 3.0


@dataclass
class CleanupStats:
    """Statistics from cleanup operations."""

    original_count: int = 0
    final_count: int = 0
    merged_tiny: int = 0
    absorbed_short: int = 0
    deglitched: int = 0
    smoothed: int = 0
    smoothing_window: int = 0

    @property
    def total_removed(self) -> int:
        """Total segments removed."""
        return self.original_count - self.final_count


def _pitch(seg: Segment) -> float:
    return seg.midi_float if seg.midi_float is not None else float(seg.midi)


def _with_midi(seg: Segment, midi: int, midi_float: Optional[float] = None) -> Segment:
    return replace(
        seg,
        midi=int(midi),
        midi_float=float(midi) if midi_float is None else midi_float,
        note_name=midi_to_note_name(midi),
    )


def join_segments(first: Segment, second: Segment, gap_sec: float = 0.0) -> Segment:
    """
    One segment spanning ``first``, an optional gap and ``second``.

    The joined segment keeps ``first``'s sound. When both are voiced the
    fractional pitch is their duration-weighted mean.
    """
    joined = replace(first, duration_sec=first.duration_sec + gap_sec + second.duration_sec)
    if not first.is_rest and not second.is_rest:
        total = first.duration_sec + second.duration_sec
        if total > 0:
            joined.midi_float = (
                _pitch(first) * first.duration_sec + _pitch(second) * second.duration_sec
            ) / total
    return joined


class SegmentCleanup:
    """Clean up segment lists produced by the segmenter."""

    def __init__(
        self,
        min_note_ms: float = 80.0,
        full_mix: bool = False,
        config: Optional[CleanupConfig] = None,
    ):
        """Initialize SegmentCleanup.

        Args:
            min_note_ms: Minimum segment length in milliseconds
            full_mix: Enable the full-mix passes
            config: Optional CleanupConfig for advanced settings
        """
        if config is not None:
            self.config = config
        else:
            self.config = CleanupConfig(min_note_ms=min_note_ms, full_mix=full_mix)

    @property
    def min_sec(self) -> float:
        return max(0.0, self.config.min_note_ms) / 1000.0

    def cleanup(
        self,
        segments: Sequence[Segment],
        return_stats: bool = False,
    ) -> List[Segment] | Tuple[List[Segment], CleanupStats]:
        """Apply all cleanup operations.

        Args:
            segments: Segments in time order
            return_stats: Whether to return cleanup statistics

        Returns:
            Cleaned segments, optionally with statistics
        """
        stats = CleanupStats(original_count=len(segments))
        result = [s for s in segments if s.duration_sec > 0]

        before = len(result)
        result = self.merge_tiny_segments(result)
        stats.merged_tiny = before - len(result)

        before = len(result)
        result = self.absorb_short_segments(result)
        stats.absorbed_short = before - len(result)

        if self.config.full_mix:
            result, stats.deglitched = self.deglitch(result)
            result, stats.smoothed, stats.smoothing_window = self.smooth_contour(result)

        stats.final_count = len(result)
        if return_stats:
            return result, stats
        return result

    def coalesce(self, segments: Sequence[Segment]) -> List[Segment]:
        """Join adjacent segments with the same sound."""
        out: List[Segment] = []
        for seg in segments:
            if out and out[-1].same_sound(seg):
                out[-1] = join_segments(out[-1], seg)
            else:
                out.append(replace(seg))
        return out

    def merge_tiny_segments(self, segments: Sequence[Segment]) -> List[Segment]:
        """
        Remove short segments sitting between two equal voiced pitches.

        A short rest or a short blip of another pitch between two segments
        voiced at the same MIDI pitch is absorbed, and the three become one.
        Repeats until no such triple remains.
        """
        min_sec = self.min_sec
        out = [replace(s) for s in segments]
        i = 1
        while i < len(out) - 1:
            prev, cur, nxt = out[i - 1], out[i], out[i + 1]
            if (
                cur.duration_sec < min_sec
                and not prev.is_rest
                and not nxt.is_rest
                and prev.midi == nxt.midi
            ):
                out[i - 1] = join_segments(prev, nxt, gap_sec=cur.duration_sec)
                del out[i:i + 2]
                # the joined segment may now complete a new triple to its left
                i = max(1, i - 1)
                continue
            i += 1
        return out

    def absorb_short_segments(self, segments: Sequence[Segment]) -> List[Segment]:
        """
        Fold every segment under the minimum length into a neighbour.

        Short segments extend the previous segment; a short run at the very
        start extends the first long segment after it. Adjacent equal
        segments are coalesced afterwards.
        """
        min_sec = self.min_sec
        out: List[Segment] = []
        pending: Optional[Segment] = None  # leading short material

        for seg in segments:
            seg = replace(seg)
            if pending is not None:
                seg.start_sec = pending.start_sec
                seg.duration_sec += pending.duration_sec
                pending = None
            if seg.duration_sec < min_sec:
                if out:
                    out[-1].duration_sec += seg.duration_sec
                else:
                    pending = seg
                continue
            out.append(seg)

        if pending is not None:
            out.append(pending)
        return self.coalesce(out)

    def deglitch(self, segments: Sequence[Segment]) -> Tuple[List[Segment], int]:
        """
        Replace isolated outlier pitches with their neighbours' average.

        Returns:
            Tuple of (segments, number of segments changed)
        """
        cfg = self.config
        max_sec = max(self.min_sec * cfg.deglitch_max_factor, 0.1)
        out = [replace(s) for s in segments]
        changed = 0

        for i in range(1, len(segments) - 1):
            prev, cur, nxt = segments[i - 1], segments[i], segments[i + 1]
            if cur.is_rest or prev.is_rest or nxt.is_rest or cur.duration_sec > max_sec:
                continue
            if abs(prev.midi - nxt.midi) > cfg.deglitch_neighbor_tolerance:
                continue
            if (
                abs(cur.midi - prev.midi) < cfg.deglitch_min_deviation
                or abs(cur.midi - nxt.midi) < cfg.deglitch_min_deviation
            ):
                continue
            average = (_pitch(prev) + _pitch(nxt)) / 2.0
            out[i] = _with_midi(cur, int(round(average)), average)
            changed += 1

        return self.coalesce(out), changed

    def smooth_contour(self, segments: Sequence[Segment]) -> Tuple[List[Segment], int, int]:
        """
        Median-filter the sequence of voiced pitches, skipping rests.

        The window is 3, or 5 when the interval sizes are jumpy.

        Returns:
            Tuple of (segments, number of segments changed, window used)
        """
        cfg = self.config
        voiced = [i for i, s in enumerate(segments) if not s.is_rest]
        out = [replace(s) for s in segments]
        if len(voiced) < 3:
            return out, 0, 0

        pitches = np.array([_pitch(segments[i]) for i in voiced])
        intervals = np.abs(np.diff(np.round(pitches)))
        jumpiness = float(np.percentile(intervals, cfg.jumpiness_percentile))
        window = 5 if jumpiness >= cfg.jumpy_interval else 3

        filtered = median_filter(pitches, size=window, mode="nearest")
        changed = 0
        for idx, value in zip(voiced, filtered):
            midi = int(round(value))
            if midi != out[idx].midi:
                changed += 1
            out[idx] = _with_midi(out[idx], midi, float(value))

        return self.coalesce(out), changed, window
