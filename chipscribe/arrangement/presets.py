"""Tone presets for arrangement tracks.

Presets are a closed set of names; ``tone_parameters`` maps each one to
the oscillator settings a synthesizer needs to voice it.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class TonePreset(str, Enum):
    """Named instrument voices."""

    PULSE_LEAD = "pulse_lead"
    WARM_SQUARE = "warm_square"
    SOFT_SAW = "soft_saw"
    FM_BELL = "fm_bell"
    BASS_PICK = "bass_pick"
    SNES_PAD = "snes_pad"
    NOISE_KIT = "noise_kit"


@dataclass(frozen=True)
class ToneParameters:
    """Oscillator, envelope and filter settings of one preset."""

    oscillator: str  # "square", "sawtooth", "triangle" or "sine"
    attack: float  # seconds
    decay: float
    sustain: float  # level, 0-1
    release: float
    vibrato_hz: float
    vibrato_cents: float
    highpass_hz: float
    formant_hz: float
    formant_q: float
    second_harmonic: float  # mix level of the octave partial
    noise: float = 0.0  # mix level of white noise

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_PRESETS: Dict[TonePreset, ToneParameters] = {
    TonePreset.PULSE_LEAD: ToneParameters("square", 0.002, 0.04, 0.4, 0.03, 5.0, 4.0, 180.0, 1600.0, 3.0, 0.06),
    TonePreset.WARM_SQUARE: ToneParameters("square", 0.005, 0.06, 0.45, 0.08, 4.5, 5.0, 140.0, 1450.0, 3.2, 0.12),
    TonePreset.SOFT_SAW: ToneParameters("sawtooth", 0.01, 0.09, 0.35, 0.12, 4.2, 3.0, 120.0, 1200.0, 2.8, 0.16),
    TonePreset.FM_BELL: ToneParameters("triangle", 0.001, 0.12, 0.1, 0.1, 6.0, 2.0, 230.0, 2300.0, 5.0, 0.35),
    TonePreset.BASS_PICK: ToneParameters("triangle", 0.002, 0.09, 0.3, 0.08, 3.5, 1.0, 70.0, 950.0, 2.2, 0.18),
    TonePreset.SNES_PAD: ToneParameters("sine", 0.03, 0.12, 0.72, 0.18, 4.2, 2.5, 90.0, 1100.0, 2.0, 0.1),
    TonePreset.NOISE_KIT: ToneParameters("triangle", 0.001, 0.04, 0.05, 0.03, 1.0, 0.0, 300.0, 2400.0, 1.5, 0.1, 0.06),
}


def tone_parameters(preset: str) -> ToneParameters:
    """
    Look up the parameters of a preset.

    Args:
        preset: TonePreset or its string value

    Raises:
        ValueError: If the name is not a known preset
    """
    return _PRESETS[TonePreset(preset)]
