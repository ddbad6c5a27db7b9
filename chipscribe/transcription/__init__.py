"""Transcription layer - Voicing, segmentation and the analyze pipeline."""

from .pipeline import MelodyTranscriber, analyze, segments_to_melody
from .segmenter import Segmenter
from .voicing import VoicingClassifier, VoicingStats, VoicingThresholds

__all__ = [
    "MelodyTranscriber",
    "analyze",
    "segments_to_melody",
    "Segmenter",
    "VoicingClassifier",
    "VoicingStats",
    "VoicingThresholds",
]
