"""Quantization - Snap segment durations to a beat grid and pitches to a scale."""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from ..core.constants import (
    FULL_MIX_MAX_JUMP,
    FULL_MIX_SNAP_VETO_FACTOR,
    JUMP_GUARD_RAW,
    JUMP_GUARD_SNAPPED,
    MIDI_MAX,
    MIDI_MIN,
    REST,
    SNAP_SEARCH_SEMITONES,
)
from ..core.models import Segment
from ..core.music import (
    choose_flat_key,
    fold_octave,
    freq_to_midi_float,
    grid_to_beats,
    limit_jump,
    midi_to_note_name,
    scale_pitch_classes,
    seconds_per_beat,
)

logger = logging.getLogger(__name__)


class Quantizer:
    """Quantize segment durations to a rhythmic grid."""

    def __init__(
        self,
        tempo: float = 120.0,
        grid: str = "eighth",
        triplets: bool = False,
    ):
        """
        Initialize Quantizer.

        Args:
            tempo: Tempo in BPM
            grid: "quarter", "eighth" or "sixteenth"
            triplets: Use the triplet version of the grid
        """
        self.tempo = tempo
        self.grid = grid
        self.triplets = triplets

    @property
    def beat_duration(self) -> float:
        """Duration of one beat in seconds."""
        return seconds_per_beat(self.tempo)

    @property
    def grid_unit(self) -> float:
        """Duration of one grid unit in beats."""
        unit = grid_to_beats(self.grid, self.triplets)
        return unit if unit > 0 else 0.5

    @property
    def min_beats(self) -> float:
        """Floor for a segment whose snapped length would be zero."""
        return self.grid_unit / 4.0

    def snap(self, beats: float) -> float:
        """Snap one duration to the grid, without error feedback."""
        snapped = round(beats / self.grid_unit) * self.grid_unit
        return snapped if snapped > 0 else self.min_beats

    def quantize_beats(self, raw_beats: Sequence[float]) -> List[float]:
        """
        Snap durations to the grid, carrying each rounding residual forward.

        Args:
            raw_beats: Unquantized durations in beats

        Returns:
            Quantized durations, each a grid multiple or the zero floor
        """
        unit = self.grid_unit
        carry = 0.0
        out = []
        for raw in raw_beats:
            target = raw + carry
            snapped = round(target / unit) * unit
            if snapped <= 0:
                snapped = self.min_beats
            carry = target - snapped
            out.append(snapped)
        return out

    def quantize_segments(self, segments: Sequence[Segment]) -> List[Segment]:
        """Return copies of segments with ``beats`` set."""
        raw = [s.duration_sec / self.beat_duration for s in segments]
        return [replace(s, beats=b) for s, b in zip(segments, self.quantize_beats(raw))]


def jump_guard_blocks(previous: Optional[int], raw: int, snapped: int) -> bool:
    """
    True when a scale snap would invent an octave-sized leap.

    Fires when the snapped interval from the previous note exceeds
    JUMP_GUARD_SNAPPED semitones while the raw interval is at most
    JUMP_GUARD_RAW.
    """
    if previous is None:
        return False
    return abs(snapped - previous) > JUMP_GUARD_SNAPPED and abs(raw - previous) <= JUMP_GUARD_RAW


def expected_range(min_hz: float, max_hz: float) -> Tuple[int, int]:
    """MIDI range covered by a frequency band."""
    lo = freq_to_midi_float(min_hz)
    hi = freq_to_midi_float(max_hz)
    if lo is None or hi is None:
        return MIDI_MIN, MIDI_MAX
    lo_midi = max(MIDI_MIN, int(round(lo)))
    hi_midi = min(MIDI_MAX, int(round(hi)))
    if hi_midi - lo_midi < 12:
        return MIDI_MIN, MIDI_MAX
    return lo_midi, hi_midi


class PitchSnapper:
    """Assign final MIDI pitches and note names to segments."""

    def __init__(
        self,
        key: str,
        scale: str,
        snap_enabled: bool = True,
        tolerance_cents: float = 50.0,
        full_mix: bool = False,
        min_note_ms: float = 80.0,
        min_hz: float = 200.0,
        max_hz: float = 2500.0,
    ):
        """
        Args:
            key: Active key root
            scale: "major" or "minor"
            snap_enabled: Snap to the scale at all
            tolerance_cents: Largest deviation a scale snap may correct
            full_mix: Enable octave normalization and the short-segment veto
            min_note_ms: Minimum note length, scales the full-mix veto
            min_hz: Band low edge, sets the expected melodic range
            max_hz: Band high edge
        """
        self.key = key
        self.scale = scale
        self.snap_enabled = snap_enabled
        self.tolerance_cents = tolerance_cents
        self.full_mix = full_mix
        self.min_note_ms = min_note_ms
        self.range = expected_range(min_hz, max_hz)
        self.pitch_classes = scale_pitch_classes(key, scale)
        self.prefer_flats = choose_flat_key(key)

    def nearest_scale_tone(self, midi_float: float) -> Tuple[int, float]:
        """
        Scale tone within +/-3 semitones of the rounded pitch closest in cents.

        Returns:
            Tuple of (MIDI pitch, deviation in cents). Ties go to the lower tone.
        """
        center = int(round(midi_float))
        best, best_cents = center, float("inf")
        for candidate in range(center - SNAP_SEARCH_SEMITONES, center + SNAP_SEARCH_SEMITONES + 1):
            if candidate % 12 not in self.pitch_classes:
                continue
            cents = abs(midi_float - candidate) * 100.0
            if cents < best_cents:
                best, best_cents = candidate, cents
        return best, best_cents

    def normalize_octave(self, midi_float: float, previous: Optional[int]) -> float:
        """Fold into the expected range near the previous note, with a bounded jump."""
        rounded = int(round(midi_float))
        folded = fold_octave(rounded, previous, self.range, FULL_MIX_MAX_JUMP)
        shift = folded - rounded
        if shift % 12 == 0:
            return midi_float + shift
        return float(folded)

    def choose_pitch(self, midi_float: float, previous: Optional[int], duration_sec: float) -> int:
        """Final MIDI pitch of one voiced segment."""
        raw = int(round(midi_float))
        if not self.snap_enabled:
            return raw
        if self.full_mix and duration_sec * 1000.0 < self.min_note_ms * FULL_MIX_SNAP_VETO_FACTOR:
            return raw
        candidate, cents = self.nearest_scale_tone(midi_float)
        if cents > self.tolerance_cents:
            return raw
        if jump_guard_blocks(previous, raw, candidate):
            return raw
        return candidate

    def snap_segments(self, segments: Sequence[Segment]) -> List[Segment]:
        """
        Return copies of segments with final pitches and note names.

        A single forward pass; the previous voiced pitch is the only state.
        """
        previous: Optional[int] = None
        out = []
        for seg in segments:
            if seg.is_rest:
                out.append(replace(seg, midi=None, midi_float=None, note_name=REST))
                continue
            midi_float = seg.midi_float if seg.midi_float is not None else float(seg.midi)
            if self.full_mix:
                midi_float = self.normalize_octave(midi_float, previous)
            midi = self.choose_pitch(midi_float, previous, seg.duration_sec)
            if self.full_mix:
                # the scale snap may widen the folded interval
                midi = limit_jump(midi, previous, FULL_MIX_MAX_JUMP)
            out.append(replace(
                seg,
                midi=midi,
                midi_float=midi_float,
                note_name=midi_to_note_name(midi, self.prefer_flats),
            ))
            previous = midi
        return out
