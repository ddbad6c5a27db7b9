"""Derive a multi-track retro arrangement from a lead melody.

Each role is generated independently from the simplified lead:
- lead: folded into A3-E6, snapped to the scale, jumps limited to 8 semitones
- bass: two octaves down in C2-G3, pulsed once per beat
- harmony: scale triad per lead note, arpeggiated (nes) or sustained (snes_lite)
- drums: kick/snare/hat pattern spanning the lead
"""

import logging
import math
from typing import List, Sequence, Tuple

from ..core.constants import REST
from ..core.models import Arrangement, ArrangementTrack, MelodyStep, TrackRole
from ..core.music import fold_octave, limit_jump, midi_to_note_name, nearest_scale_midi, note_name_to_midi
from .presets import TonePreset

logger = logging.getLogger(__name__)

LEAD_RANGE = (57, 88)
BASS_RANGE = (36, 55)
HARMONY_RANGE = (55, 79)
LEAD_MAX_JUMP = 8
SCALE_SEARCH = 5

LEAD_VELOCITY = 104
BASS_VELOCITY = 84
BASS_OFFBEAT_VELOCITY = 72
ARP_VELOCITY = 74
PAD_VELOCITY = 70
REST_VELOCITY = 0

ARP_CELL_BEATS = 0.25
DRUM_UNIT_BEATS = 0.5
KICK, SNARE, HAT = "C2", "D2", "F#2"
DRUM_VELOCITIES = {KICK: 94, SNARE: 86, HAT: 60}

OUTPUT_STYLES = ("lead_only", "auto_arrange")
RETRO_STYLES = ("nes", "snes_lite")

_EPS = 1e-9


def merge_adjacent(steps: Sequence[MelodyStep]) -> List[MelodyStep]:
    """Join neighbouring steps that share note and velocity; drop empty steps."""
    out: List[MelodyStep] = []
    for step in steps:
        if step.beats <= 0:
            continue
        if out and out[-1].note == step.note and out[-1].velocity == step.velocity:
            out[-1].beats += step.beats
        else:
            out.append(MelodyStep(step.note, step.beats, step.velocity))
    return out


def _rest(beats: float) -> MelodyStep:
    return MelodyStep(REST, beats, REST_VELOCITY)


def _name(midi: int) -> str:
    return midi_to_note_name(midi, prefer_flats=False)


def simplify_lead(melody: Sequence[MelodyStep], key: str, scale: str) -> List[MelodyStep]:
    """Lead line folded into a playable range, in scale, without wide leaps."""
    out = []
    previous = None
    for step in melody:
        if step.is_rest:
            out.append(_rest(step.beats))
            continue
        midi = note_name_to_midi(step.note)
        if midi is None:
            logger.debug("Skipping unparseable note %r", step.note)
            continue
        target = nearest_scale_midi(fold_octave(midi, None, LEAD_RANGE), key, scale, SCALE_SEARCH)
        target = limit_jump(target, previous, LEAD_MAX_JUMP)
        previous = target
        out.append(MelodyStep(_name(target), step.beats, LEAD_VELOCITY))
    return merge_adjacent(out)


def make_bass(lead: Sequence[MelodyStep], key: str, scale: str) -> List[MelodyStep]:
    """Lead two octaves down, split into per-beat pulses with alternating accents."""
    out = []
    for step in lead:
        if step.is_rest:
            out.append(_rest(step.beats))
            continue
        midi = note_name_to_midi(step.note)
        if midi is None:
            continue
        bass = nearest_scale_midi(fold_octave(midi - 24, None, BASS_RANGE), key, scale, SCALE_SEARCH)
        chunks = max(1, int(math.floor(step.beats + 0.5)))
        for i in range(chunks):
            velocity = BASS_VELOCITY if i % 2 == 0 else BASS_OFFBEAT_VELOCITY
            out.append(MelodyStep(_name(bass), step.beats / chunks, velocity))
    return merge_adjacent(out)


def triad(midi: int, key: str, scale: str) -> Tuple[int, int, int]:
    """Root, third and fifth built on the scale tone nearest ``midi``."""
    root = nearest_scale_midi(midi, key, scale, SCALE_SEARCH)
    third = 4 if scale == "major" else 3
    return (
        root,
        nearest_scale_midi(root + third, key, scale, SCALE_SEARCH),
        nearest_scale_midi(root + 7, key, scale, SCALE_SEARCH),
    )


def make_harmony(lead: Sequence[MelodyStep], key: str, scale: str, retro_style: str) -> List[MelodyStep]:
    """Triad arpeggio cells (nes) or third-then-fifth sustains (snes_lite)."""
    out = []
    for step in lead:
        if step.is_rest:
            out.append(_rest(step.beats))
            continue
        midi = note_name_to_midi(step.note)
        if midi is None:
            continue
        chord = triad(fold_octave(midi, None, HARMONY_RANGE), key, scale)
        if retro_style == "nes":
            remaining = step.beats
            idx = 0
            while remaining > _EPS:
                beats = min(ARP_CELL_BEATS, remaining)
                out.append(MelodyStep(_name(chord[idx % 3]), beats, ARP_VELOCITY))
                remaining -= beats
                idx += 1
        else:
            half = step.beats * 0.5
            out.append(MelodyStep(_name(chord[1]), half, PAD_VELOCITY))
            out.append(MelodyStep(_name(chord[2]), step.beats - half, PAD_VELOCITY))
    return merge_adjacent(out)


def drum_hit(position: float) -> str:
    """Kit piece at a beat position: kick on beats 0 and 2, snare on 1 and 3, hat between."""
    in_bar = position % 4.0
    if abs(in_bar - 0.0) < 1e-3 or abs(in_bar - 2.0) < 1e-3:
        return KICK
    if abs(in_bar - 1.0) < 1e-3 or abs(in_bar - 3.0) < 1e-3:
        return SNARE
    return HAT


def make_drums(total_beats: float, unit: float = DRUM_UNIT_BEATS) -> List[MelodyStep]:
    """Drum pattern covering exactly ``total_beats``."""
    out = []
    cursor = 0.0
    while cursor < total_beats - _EPS:
        beats = min(unit, total_beats - cursor)
        hit = drum_hit(cursor)
        out.append(MelodyStep(hit, beats, DRUM_VELOCITIES[hit]))
        cursor += unit
    return merge_adjacent(out)


def build_arrangement(
    melody: Sequence[MelodyStep],
    bpm: float,
    key: str,
    scale: str,
    output_style: str = "auto_arrange",
    retro_style: str = "snes_lite",
) -> Arrangement:
    """
    Build an arrangement from a quantized melody.

    Args:
        melody: Lead melody steps
        bpm: Tempo carried onto the arrangement
        key: Key root used for scale snapping
        scale: "major" or "minor"
        output_style: "lead_only" or "auto_arrange"
        retro_style: "nes" or "snes_lite"

    Returns:
        Arrangement with the lead track, plus bass, harmony and drums for auto_arrange
    """
    nes = retro_style == "nes"
    lead = simplify_lead(melody, key, scale)
    tracks = [
        ArrangementTrack(
            role=TrackRole.LEAD,
            name="Lead",
            tone_preset=(TonePreset.PULSE_LEAD if nes else TonePreset.WARM_SQUARE).value,
            midi_channel=0,
            midi_program=80,
            steps=lead,
            pan=-6,
        )
    ]

    if output_style == "auto_arrange":
        total = sum(s.beats for s in lead)
        tracks.extend([
            ArrangementTrack(
                role=TrackRole.BASS,
                name="Bass",
                tone_preset=TonePreset.BASS_PICK.value,
                midi_channel=2,
                midi_program=38,
                steps=make_bass(lead, key, scale),
                pan=-2,
            ),
            ArrangementTrack(
                role=TrackRole.HARMONY,
                name="Harmony",
                tone_preset=(TonePreset.PULSE_LEAD if nes else TonePreset.SNES_PAD).value,
                midi_channel=1,
                midi_program=80 if nes else 50,
                steps=make_harmony(lead, key, scale, retro_style),
                pan=10,
            ),
            ArrangementTrack(
                role=TrackRole.DRUMS,
                name="Drums",
                tone_preset=TonePreset.NOISE_KIT.value,
                midi_channel=9,
                midi_program=None,
                steps=make_drums(total),
                pan=0,
            ),
        ])

    logger.debug("Arranged %d tracks over %.2f beats", len(tracks), sum(s.beats for s in lead))
    return Arrangement(bpm=bpm, key=key, scale=scale, tracks=tracks)
