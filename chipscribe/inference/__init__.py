"""Inference layer - Key detection."""

from .key import KeyCandidate, KeyDetector, KeyInfo, detect_key

__all__ = [
    "KeyCandidate",
    "KeyDetector",
    "KeyInfo",
    "detect_key",
]
