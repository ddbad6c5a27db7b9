"""Configuration records for analysis, continuity and suggested settings."""

import math
import numbers
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping

from .constants import (
    ANALYSIS_MODES,
    DEFAULT_BPM,
    DEFAULT_INTENSITY,
    DEFAULT_KEY,
    DEFAULT_SCALE,
    GRID_BASE_BEATS,
    KEY_NAMES,
    NOTE_NAMES_FLAT,
    NOTE_NAMES_SHARP,
    SCALES,
)
from .music import clamp


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _finite(value: Any) -> bool:
    return isinstance(value, numbers.Real) and math.isfinite(float(value))


@dataclass
class AnalysisOptions:
    """Settings for one transcription pass.

    Attributes:
        bpm: Tempo used to convert seconds to beats (default: 120)
        grid: Note grid, "quarter", "eighth" or "sixteenth" (default: eighth)
        triplets: Use the triplet version of the grid (default: False)
        analysis_mode: "monophonic" or "full_mix" (default: monophonic)
        rms_threshold: Minimum frame RMS to count as voiced (default: 0.02)
        clarity_threshold: Minimum pitch clarity to count as voiced (default: 0.75)
        min_note_ms: Segments shorter than this are merged away (default: 80)
        key_mode: "auto" (detected key) or "manual" (use key/scale) (default: auto)
        key: Manual key root (default: C)
        scale: Manual scale, "major" or "minor" (default: major)
        snap_enabled: Snap pitches to the active scale (default: True)
        snap_tolerance_cents: Largest deviation accepted by the snap (default: 50)
        min_hz: Lowest accepted pitch in Hz (default: 200)
        max_hz: Highest accepted pitch in Hz (default: 2500)
    """

    bpm: float = DEFAULT_BPM
    grid: str = "eighth"
    triplets: bool = False
    analysis_mode: str = "monophonic"
    rms_threshold: float = 0.02
    clarity_threshold: float = 0.75
    min_note_ms: float = 80.0
    key_mode: str = "auto"
    key: str = DEFAULT_KEY
    scale: str = DEFAULT_SCALE
    snap_enabled: bool = True
    snap_tolerance_cents: float = 50.0
    min_hz: float = 200.0
    max_hz: float = 2500.0

    @property
    def full_mix(self) -> bool:
        return self.analysis_mode == "full_mix"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisOptions":
        """Build options from snake_case or camelCase keys; unknown keys are ignored."""
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = data[f.name]
            elif _camel(f.name) in data:
                kwargs[f.name] = data[_camel(f.name)]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys."""
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}

    def sanitized(self) -> "AnalysisOptions":
        """Copy with out-of-range values replaced by safe defaults."""
        min_hz = self.min_hz if _finite(self.min_hz) and self.min_hz > 0 else 50.0
        max_hz = self.max_hz if _finite(self.max_hz) and self.max_hz > 0 else 2500.0
        if min_hz > max_hz:
            min_hz, max_hz = max_hz, min_hz
        known_keys = set(KEY_NAMES) | set(NOTE_NAMES_SHARP) | set(NOTE_NAMES_FLAT)
        return replace(
            self,
            bpm=float(self.bpm) if _finite(self.bpm) and self.bpm > 0 else DEFAULT_BPM,
            grid=self.grid if self.grid in GRID_BASE_BEATS else "eighth",
            analysis_mode=self.analysis_mode if self.analysis_mode in ANALYSIS_MODES else "monophonic",
            rms_threshold=max(0.0, float(self.rms_threshold)) if _finite(self.rms_threshold) else 0.02,
            clarity_threshold=(
                clamp(float(self.clarity_threshold), 0.0, 1.0) if _finite(self.clarity_threshold) else 0.75
            ),
            min_note_ms=max(0.0, float(self.min_note_ms)) if _finite(self.min_note_ms) else 80.0,
            key_mode=self.key_mode if self.key_mode in ("auto", "manual") else "auto",
            key=self.key if self.key in known_keys else DEFAULT_KEY,
            scale=self.scale if self.scale in SCALES else DEFAULT_SCALE,
            snap_tolerance_cents=(
                max(0.0, float(self.snap_tolerance_cents)) if _finite(self.snap_tolerance_cents) else 50.0
            ),
            min_hz=float(min_hz),
            max_hz=float(max_hz),
        )


@dataclass
class ContinuityOptions:
    """Settings for the continuity engine.

    Attributes:
        mode: "seamless" bridges and fills rests, "natural" leaves them (default: seamless)
        intensity: 0-100, scales bridge length, rest cap and fill density (default: 60)
        grid: Grid used to re-quantize accompaniment fills (default: eighth)
        triplets: Triplet grid for accompaniment fills (default: False)
    """

    mode: str = "seamless"
    intensity: float = DEFAULT_INTENSITY
    grid: str = "eighth"
    triplets: bool = False

    @property
    def enabled(self) -> bool:
        return self.mode == "seamless"

    @property
    def clamped_intensity(self) -> float:
        if not _finite(self.intensity):
            return DEFAULT_INTENSITY
        return clamp(float(self.intensity), 0.0, 100.0)


@dataclass
class SuggestedAnalysisSettings:
    """Recommended analysis settings derived from the audio itself."""

    bpm: float
    grid: str
    triplets: bool
    analysis_mode: str
    rms_threshold: float
    clarity_threshold: float
    min_hz: float
    max_hz: float
    min_note_ms: float
    bpm_confidence: float = 0.0
    bpm_source: str = "builtin"

    def apply_to(self, options: AnalysisOptions) -> AnalysisOptions:
        """Return a copy of options with these settings applied."""
        return replace(
            options,
            bpm=self.bpm,
            grid=self.grid,
            triplets=self.triplets,
            analysis_mode=self.analysis_mode,
            rms_threshold=self.rms_threshold,
            clarity_threshold=self.clarity_threshold,
            min_hz=self.min_hz,
            max_hz=self.max_hz,
            min_note_ms=self.min_note_ms,
        )
