"""Continuity engine - Bridge, shorten and fill rests in an arrangement.

"seamless" mode:
- lead: short rests between notes are bridged, edge rests clamped to the
  grid within half a beat, long rests capped and backfilled with a softer
  repeat of the previous note
- bass / harmony / drums: every rest is replaced with generated filler, the
  track is re-quantized to the grid and cut to the lead length
"natural" mode returns an untouched copy.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from ..core.models import (
    Arrangement,
    ArrangementTrack,
    ContinuityResult,
    ContinuityStats,
    MelodyStep,
    TrackRole,
)
from ..core.music import grid_to_beats, key_to_pitch_class, midi_to_note_name, note_name_to_midi
from ..core.options import ContinuityOptions
from .arranger import HAT, drum_hit, merge_adjacent

logger = logging.getLogger(__name__)

EDGE_REST_MAX_BEATS = 0.5
FILL_VELOCITY = 56
HARMONY_FILL_VELOCITY = 62
BASS_FILL_VELOCITY = 72
DRUM_FILL_VELOCITY = 86
HAT_FILL_VELOCITY = 54
DENSE_FILL_INTENSITY = 70
CONTINUATION_MAX_INTERVAL = 2

_EPS = 1e-9


def bridge_threshold_ms(intensity: float) -> float:
    """Longest rest bridged between two notes: 160 ms at 0, 320 ms at 100."""
    return 160.0 + intensity / 100.0 * 160.0


def max_lead_rest_beats(intensity: float) -> float:
    """Longest lead rest kept as silence: 0.75 beat at 0, 1.5 beats at 100."""
    return 0.75 + intensity / 100.0 * 0.75


def choose_continuation_pitch(prev: MelodyStep, nxt: MelodyStep) -> str:
    """Pitch that carries through a bridged rest.

    Close neighbours (within 2 semitones) keep whichever note is longer;
    otherwise the preceding note continues.
    """
    pm = note_name_to_midi(prev.note)
    nm = note_name_to_midi(nxt.note)
    if pm is None or nm is None:
        return prev.note
    if abs(pm - nm) <= CONTINUATION_MAX_INTERVAL:
        return nxt.note if nxt.beats > prev.beats else prev.note
    return prev.note


def _snap_down(beats: float, unit: float) -> float:
    return max(unit, int(beats / unit + 1e-9) * unit)


def edge_rest_beats(unit: float) -> float:
    """Longest leading or trailing lead rest: the largest grid multiple within half a beat."""
    if unit > EDGE_REST_MAX_BEATS:
        return EDGE_REST_MAX_BEATS
    return int(EDGE_REST_MAX_BEATS / unit + 1e-9) * unit


def fill_cell_beats(intensity: float, unit: float) -> float:
    """Fill cell length: sixteenth or eighth density rounded to a whole number of grid units."""
    density = 0.25 if intensity >= DENSE_FILL_INTENSITY else 0.5
    return unit * max(1, int(round(density / unit)))


def quantize_steps(steps: Sequence[MelodyStep], unit: float) -> List[MelodyStep]:
    """
    Snap step boundaries to multiples of ``unit``.

    Boundaries are rounded rather than lengths and the final boundary is
    kept, so the total is unchanged. Steps that collapse are dropped.
    """
    out: List[MelodyStep] = []
    end = 0.0
    snapped_start = 0.0
    for i, step in enumerate(steps):
        end += step.beats
        snapped_end = end if i == len(steps) - 1 else round(end / unit) * unit
        if snapped_end - snapped_start > _EPS:
            out.append(replace(step, beats=snapped_end - snapped_start))
            snapped_start = snapped_end
    return out


def apply_continuity_to_melody(
    melody: Sequence[MelodyStep],
    bpm: float,
    options: ContinuityOptions,
    stats: Optional[ContinuityStats] = None,
) -> List[MelodyStep]:
    """
    Bridge and cap the rests of a lead line.

    Bridging preserves the total length: a removed rest's beats go to the
    note that absorbs it.

    Args:
        melody: Lead steps
        bpm: Tempo, converts rest lengths to milliseconds
        options: Continuity options
        stats: Counters updated in place, if given

    Returns:
        New list of steps
    """
    steps = [replace(s) for s in melody]
    if not options.enabled:
        return steps
    stats = stats if stats is not None else ContinuityStats()

    intensity = options.clamped_intensity
    unit = grid_to_beats(options.grid, options.triplets)
    max_bridge_ms = bridge_threshold_ms(intensity)
    edge_cap = edge_rest_beats(unit)
    rest_cap = max_lead_rest_beats(intensity)
    ms_per_beat = 60000.0 / max(30.0, bpm if bpm and bpm > 0 else 120.0)

    i = 0
    while i < len(steps):
        cur = steps[i]
        if not cur.is_rest:
            i += 1
            continue
        prev = steps[i - 1] if i > 0 else None
        nxt = steps[i + 1] if i + 1 < len(steps) else None

        if (
            prev is not None and nxt is not None
            and not prev.is_rest and not nxt.is_rest
            and cur.beats * ms_per_beat <= max_bridge_ms
        ):
            if prev.note == nxt.note:
                prev.beats += cur.beats + nxt.beats
                del steps[i:i + 2]
            else:
                prev.note = choose_continuation_pitch(prev, nxt)
                prev.beats += cur.beats
                del steps[i]
            stats.rests_removed += 1
            i = max(0, i - 1)
            continue

        if (prev is None or nxt is None) and cur.beats > edge_cap + _EPS:
            cur.beats = edge_cap
            stats.rests_shortened += 1
        i += 1

    capped: List[MelodyStep] = []
    for step in _coalesce_by_note(steps):
        if not step.is_rest or step.beats <= rest_cap + _EPS:
            capped.append(step)
            continue
        keep = _snap_down(rest_cap, unit)
        if keep >= step.beats:
            capped.append(step)
            continue
        prev = capped[-1] if capped else None
        stats.rests_shortened += 1
        capped.append(replace(step, beats=keep))
        if prev is not None and not prev.is_rest:
            capped.append(MelodyStep(prev.note, step.beats - keep, FILL_VELOCITY))
            stats.fills_inserted += 1

    return merge_adjacent(capped)


def _coalesce_by_note(steps: Sequence[MelodyStep]) -> List[MelodyStep]:
    """Join neighbours with the same note, keeping the first velocity."""
    out: List[MelodyStep] = []
    for step in steps:
        if out and out[-1].note == step.note:
            out[-1].beats += step.beats
        else:
            out.append(replace(step))
    return [s for s in out if s.beats > 0]


def _cells(beats: float, cell: float) -> List[float]:
    """Split a length into cells of ``cell`` beats, the last one taking the remainder."""
    out = []
    remaining = beats
    while remaining > _EPS:
        b = min(cell, remaining)
        out.append(b)
        remaining -= b
    return out


def harmony_fill(beats: float, key: str, scale: str, cell: float) -> List[MelodyStep]:
    """Root, fifth, third, fifth cycle around C5."""
    root = key_to_pitch_class(key)
    third = 4 if scale == "major" else 3
    cycle = [root, (root + 7) % 12, (root + third) % 12, (root + 7) % 12]
    return [
        MelodyStep(midi_to_note_name(72 + cycle[i % len(cycle)]), b, HARMONY_FILL_VELOCITY)
        for i, b in enumerate(_cells(beats, cell))
    ]


def bass_fill(beats: float, key: str) -> List[MelodyStep]:
    """Key root sustained in the second octave."""
    return [MelodyStep(midi_to_note_name(36 + key_to_pitch_class(key)), beats, BASS_FILL_VELOCITY)]


def drum_fill(beats: float, cell: float) -> List[MelodyStep]:
    """Kick/snare/hat pattern restarted at the beginning of the rest."""
    out = []
    cursor = 0.0
    for b in _cells(beats, cell):
        hit = drum_hit(cursor)
        out.append(MelodyStep(hit, b, HAT_FILL_VELOCITY if hit == HAT else DRUM_FILL_VELOCITY))
        cursor += b
    return out


def fill_track_rests(
    track: ArrangementTrack,
    make_fill: Callable[[float], List[MelodyStep]],
    unit: Optional[float] = None,
) -> Tuple[List[MelodyStep], int]:
    """Replace every rest of a track with generated material.

    With ``unit`` the filled track is re-quantized to that grid before
    neighbours are joined.

    Returns:
        Tuple of (steps, number of rests filled)
    """
    out: List[MelodyStep] = []
    fills = 0
    for step in track.steps:
        if step.is_rest:
            out.extend(make_fill(step.beats))
            fills += 1
        else:
            out.append(replace(step))
    if unit:
        out = quantize_steps(out, unit)
    return merge_adjacent(out), fills


def trim_steps(steps: Sequence[MelodyStep], total_beats: float) -> List[MelodyStep]:
    """Cut a step list so it lasts at most ``total_beats``."""
    out: List[MelodyStep] = []
    cursor = 0.0
    for step in steps:
        if cursor >= total_beats - _EPS:
            break
        beats = min(step.beats, total_beats - cursor)
        out.append(replace(step, beats=beats))
        cursor += beats
    return out


def apply_continuity(arrangement: Arrangement, options: Optional[ContinuityOptions] = None) -> ContinuityResult:
    """
    Apply the continuity policy to every track of an arrangement.

    Args:
        arrangement: Arrangement from build_arrangement
        options: Continuity options (default: seamless, intensity 60)

    Returns:
        ContinuityResult with a new arrangement and the counters
    """
    options = options or ContinuityOptions()
    stats = ContinuityStats()
    copied = [replace(t, steps=[replace(s) for s in t.steps]) for t in arrangement.tracks]
    if not options.enabled:
        return ContinuityResult(replace(arrangement, tracks=copied), stats)

    intensity = options.clamped_intensity
    unit = grid_to_beats(options.grid, options.triplets)
    cell = fill_cell_beats(intensity, unit)
    key, scale = arrangement.key, arrangement.scale

    tracks = []
    for track in copied:
        if track.role == TrackRole.LEAD:
            steps = apply_continuity_to_melody(track.steps, arrangement.bpm, options, stats)
        elif track.role == TrackRole.HARMONY:
            steps, fills = fill_track_rests(track, lambda b: harmony_fill(b, key, scale, cell), unit)
            stats.fills_inserted += fills
        elif track.role == TrackRole.BASS:
            steps, fills = fill_track_rests(track, lambda b: bass_fill(b, key), unit)
            stats.fills_inserted += fills
        elif track.role == TrackRole.DRUMS:
            steps, fills = fill_track_rests(track, lambda b: drum_fill(b, cell), unit)
            stats.fills_inserted += fills
        else:
            steps = track.steps
        tracks.append(replace(track, steps=steps))

    lead = next((t for t in tracks if t.role == TrackRole.LEAD), None)
    if lead is not None:
        # edge clamping may shorten the lead; accompaniment ends with it
        total = lead.total_beats()
        tracks = [t if t is lead else replace(t, steps=trim_steps(t.steps, total)) for t in tracks]

    logger.debug(
        "Continuity: %d rests removed, %d shortened, %d fills",
        stats.rests_removed, stats.rests_shortened, stats.fills_inserted,
    )
    return ContinuityResult(replace(arrangement, tracks=tracks), stats)
