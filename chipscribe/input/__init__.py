"""Input layer - Audio loading and signal preparation."""

from .loader import AudioLoader
from .signal import downmix_to_mono, lead_emphasis, validate_signal

__all__ = [
    "AudioLoader",
    "downmix_to_mono",
    "lead_emphasis",
    "validate_signal",
]
