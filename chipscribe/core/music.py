"""Pitch, note-name and scale helpers shared by every layer."""

import math
import re
from typing import List, Optional, Tuple

import numpy as np

from .constants import (
    DEFAULT_BPM,
    FLAT_KEYS,
    GRID_BASE_BEATS,
    MAJOR_INTERVALS,
    MINOR_INTERVALS,
    MIDI_MAX,
    MIDI_MIN,
    NOTE_NAMES_FLAT,
    NOTE_NAMES_SHARP,
)

_NOTE_RE = re.compile(r"^([A-G])([#b]?)(-?\d+)$")
_LETTER_PC = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def midi_to_freq(midi: float) -> float:
    """Convert MIDI pitch to frequency (Hz)."""
    return 440.0 * (2 ** ((midi - 69) / 12.0))


def freq_to_midi_float(freq: float) -> Optional[float]:
    """Convert frequency (Hz) to a fractional MIDI pitch.

    Returns None for non-positive or non-finite input.
    """
    if freq is None or not np.isfinite(freq) or freq <= 0:
        return None
    return 69.0 + 12.0 * math.log2(freq / 440.0)


def midi_to_note_name(midi: int, prefer_flats: bool = False) -> str:
    """Get note name (e.g., 'C4', 'Bb3') in scientific pitch notation."""
    midi = int(midi)
    names = NOTE_NAMES_FLAT if prefer_flats else NOTE_NAMES_SHARP
    octave = (midi // 12) - 1
    return f"{names[midi % 12]}{octave}"


def note_name_to_midi(name: str) -> Optional[int]:
    """Parse a note name like 'C#4' or 'Eb-1'. Returns None if unparseable."""
    if not name:
        return None
    match = _NOTE_RE.match(name)
    if not match:
        return None
    letter, accidental, octave = match.groups()
    pc = _LETTER_PC[letter]
    if accidental == "#":
        pc += 1
    elif accidental == "b":
        pc -= 1
    return (int(octave) + 1) * 12 + pc % 12


def key_to_pitch_class(key: str) -> int:
    """Pitch class (0-11) of a key name; unknown keys map to C."""
    if key in NOTE_NAMES_SHARP:
        return NOTE_NAMES_SHARP.index(key)
    if key in NOTE_NAMES_FLAT:
        return NOTE_NAMES_FLAT.index(key)
    return 0


def scale_pitch_classes(key: str, scale: str) -> List[int]:
    """Get the pitch classes (0-11) that belong to a major or natural minor scale."""
    root = key_to_pitch_class(key)
    intervals = MINOR_INTERVALS if scale == "minor" else MAJOR_INTERVALS
    return [(root + interval) % 12 for interval in intervals]


def choose_flat_key(key: str) -> bool:
    """Whether note names in this key should be spelled with flats."""
    return key in FLAT_KEYS


def grid_to_beats(grid: str, triplets: bool) -> float:
    """Grid unit in beats for a note grid and triplet setting."""
    base = GRID_BASE_BEATS.get(grid, GRID_BASE_BEATS["eighth"])
    return base * (2.0 / 3.0) if triplets else base


def seconds_per_beat(bpm: float) -> float:
    if bpm is None or not np.isfinite(bpm) or bpm <= 0:
        bpm = DEFAULT_BPM
    return 60.0 / bpm


def nearest_scale_midi(midi: int, key: str, scale: str, search: int = 5) -> int:
    """Nearest in-scale MIDI note by semitone distance (ties go low)."""
    pcs = scale_pitch_classes(key, scale)
    best = midi
    best_diff = math.inf
    for candidate in range(midi - search, midi + search + 1):
        if candidate % 12 not in pcs:
            continue
        diff = abs(candidate - midi)
        if diff < best_diff:
            best = candidate
            best_diff = diff
    return best


def limit_jump(midi: int, previous: Optional[int], max_jump: Optional[float]) -> int:
    """Clip the interval from previous to at most max_jump semitones."""
    if previous is None or max_jump is None:
        return midi
    jump = midi - previous
    if abs(jump) > max_jump:
        return int(previous + math.copysign(int(max_jump), jump))
    return midi


def fold_octave(
    candidate: int,
    previous: Optional[int] = None,
    allowed_range: Tuple[int, int] = (MIDI_MIN, MIDI_MAX),
    max_jump: Optional[float] = None,
) -> int:
    """Move a pitch by whole octaves into range, then bound its jump.

    Among the octave transpositions of ``candidate`` lying inside
    ``allowed_range`` the one nearest ``previous`` wins (nearest the
    candidate itself when there is no previous note). The result is then
    clipped to ``max_jump`` semitones from ``previous`` and finally clamped
    into the range.

    Args:
        candidate: MIDI pitch to fold
        previous: Previously emitted MIDI pitch, if any
        allowed_range: Inclusive (low, high) MIDI bounds
        max_jump: Largest allowed interval from previous (None = unbounded)

    Returns:
        Folded MIDI pitch
    """
    lo, hi = allowed_range
    if lo > hi:
        lo, hi = hi, lo
    candidate = int(candidate)

    options = [
        candidate + 12 * k
        for k in range(-11, 12)
        if lo <= candidate + 12 * k <= hi
    ]
    if options:
        anchor = candidate if previous is None else previous
        folded = min(options, key=lambda m: (abs(m - anchor), abs(m - candidate)))
    else:
        folded = candidate

    folded = limit_jump(folded, previous, max_jump)
    return int(clamp(folded, lo, hi))
