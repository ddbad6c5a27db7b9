"""Arrangement layer - Multi-track arrangement, continuity and tone presets."""

from .arranger import build_arrangement, merge_adjacent
from .continuity import (
    apply_continuity,
    apply_continuity_to_melody,
    choose_continuation_pitch,
)
from .presets import TonePreset, ToneParameters, tone_parameters

__all__ = [
    "build_arrangement",
    "merge_adjacent",
    "apply_continuity",
    "apply_continuity_to_melody",
    "choose_continuation_pitch",
    "TonePreset",
    "ToneParameters",
    "tone_parameters",
]
