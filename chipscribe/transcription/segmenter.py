"""Collapse classified frames into note and rest segments."""

from typing import List, Optional

import numpy as np

from ..core.constants import REST
from ..core.models import Frame, Segment
from ..core.music import midi_to_note_name


class Segmenter:
    """Median-smooth the voiced pitch track and group frames into runs."""

    def __init__(self, median_radius: int = 2):
        """
        Args:
            median_radius: Frames on each side of the median window
        """
        self.median_radius = median_radius

    def smooth(self, frames: List[Frame]) -> List[Optional[float]]:
        """
        Median of midi_float over +/- median_radius frames.

        Rest frames neither receive nor contribute a value.
        """
        values = [None if f.is_rest else f.midi_float for f in frames]
        out: List[Optional[float]] = []
        r = self.median_radius
        for i, value in enumerate(values):
            if value is None:
                out.append(None)
                continue
            window = [v for v in values[max(0, i - r): i + r + 1] if v is not None]
            out.append(float(np.median(window)))
        return out

    def build(self, frames: List[Frame], total_duration: float) -> List[Segment]:
        """
        Group frames into segments covering [0, total_duration].

        Consecutive frames join when both are rests, or both are voiced
        with the same rounded smoothed pitch. The last segment is stretched
        to the end of the buffer. Without frames the whole buffer is one
        rest.

        Args:
            frames: Classified frames in time order
            total_duration: Buffer length in seconds

        Returns:
            List of Segment
        """
        if not frames:
            if total_duration <= 0:
                return []
            return [Segment(is_rest=True, start_sec=0.0, duration_sec=total_duration)]

        smoothed = self.smooth(frames)
        segments: List[Segment] = []
        run_values: List[float] = []

        def close_run():
            if segments and not segments[-1].is_rest and run_values:
                segments[-1].midi_float = float(np.mean(run_values))

        for frame, value in zip(frames, smoothed):
            midi = None if value is None else int(round(value))
            last = segments[-1] if segments else None
            if last is not None and last.is_rest == (midi is None) and last.midi == midi:
                last.duration_sec += frame.duration_sec
                if value is not None:
                    run_values.append(value)
                continue

            close_run()
            run_values = [value] if value is not None else []
            segments.append(Segment(
                is_rest=midi is None,
                start_sec=frame.time_sec,
                duration_sec=frame.duration_sec,
                midi=midi,
                note_name=midi_to_note_name(midi) if midi is not None else REST,
            ))
        close_run()

        tail = total_duration - segments[-1].end_sec
        if tail > 0:
            segments[-1].duration_sec += tail
        return [s for s in segments if s.duration_sec > 0]
