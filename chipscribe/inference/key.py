"""Key detection - Identify the tonal center of a melody.

Krumhansl-Schmuckler style: a 12-bin pitch-class histogram, weighted by
how long each pitch sounds, is scored against every rotation of the major
and minor key profiles by dot product. The best of the 24 candidates
wins; ties go to the lower root, major before minor.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import librosa

from ..core.constants import DEFAULT_KEY, DEFAULT_SCALE, KEY_NAMES
from ..core.models import Segment

logger = logging.getLogger(__name__)


@dataclass
class KeyCandidate:
    """A candidate key with its score."""

    root: str
    scale: str
    score: float

    @property
    def name(self) -> str:
        return f"{self.root} {self.scale}"


@dataclass
class KeyInfo:
    """Container for key detection results."""

    root: str  # Key root (e.g., "C", "Eb")
    scale: str  # "major" or "minor"
    confidence: float  # margin over the runner-up, 0.0 - 1.0
    pitch_class_distribution: np.ndarray = None  # 12-element array
    alternatives: List[KeyCandidate] = field(default_factory=list)


class KeyDetector:
    """Detect musical key from segments, a histogram or audio."""

    # Krumhansl-Schmuckler key profiles (cognitive-based)
    KRUMHANSL_MAJOR = np.array(
        [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
    )
    KRUMHANSL_MINOR = np.array(
        [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
    )

    def __init__(self, n_alternatives: int = 3):
        """
        Initialize KeyDetector.

        Args:
            n_alternatives: How many runner-up keys to report in KeyInfo
        """
        self.n_alternatives = n_alternatives

    def build_histogram(self, segments: Sequence[Segment]) -> np.ndarray:
        """
        Duration-weighted pitch-class histogram of the voiced segments.

        Returns:
            12-element array (unnormalized, seconds per pitch class)
        """
        hist = np.zeros(12)
        for seg in segments:
            if seg.is_rest or seg.midi is None or seg.duration_sec <= 0:
                continue
            hist[int(seg.midi) % 12] += seg.duration_sec
        return hist

    def candidates(self, histogram: np.ndarray) -> List[KeyCandidate]:
        """Score all 24 keys, in root order with major before minor."""
        hist = np.asarray(histogram, dtype=np.float64).reshape(12)
        hist = np.nan_to_num(hist, nan=0.0, posinf=0.0, neginf=0.0)
        result = []
        for root in range(12):
            for scale, profile in (("major", self.KRUMHANSL_MAJOR), ("minor", self.KRUMHANSL_MINOR)):
                score = float(hist @ np.roll(profile, root))
                result.append(KeyCandidate(KEY_NAMES[root], scale, score))
        return result

    def detect_from_histogram(self, histogram: np.ndarray) -> Tuple[str, str, float]:
        """
        Detect key from a pitch-class histogram.

        Returns:
            Tuple of (key name, scale, score). An empty histogram gives C major.
        """
        hist = np.asarray(histogram, dtype=np.float64)
        if hist.shape != (12,) or not np.any(hist > 0):
            return DEFAULT_KEY, DEFAULT_SCALE, 0.0

        best = None
        for cand in self.candidates(hist):
            if best is None or cand.score > best.score:
                best = cand
        return best.root, best.scale, best.score

    def detect(self, segments: Sequence[Segment]) -> KeyInfo:
        """
        Full key analysis of a segment list.

        Args:
            segments: Segments with rounded MIDI pitches

        Returns:
            KeyInfo with the best key and the runners-up
        """
        hist = self.build_histogram(segments)
        if not np.any(hist > 0):
            return KeyInfo(
                root=DEFAULT_KEY,
                scale=DEFAULT_SCALE,
                confidence=0.0,
                pitch_class_distribution=hist,
            )

        root, scale, score = self.detect_from_histogram(hist)
        ranked = sorted(self.candidates(hist), key=lambda c: c.score, reverse=True)
        runners_up = [c for c in ranked if not (c.root == root and c.scale == scale)]
        second = runners_up[0].score if runners_up else 0.0
        confidence = (score - second) / score if score > 0 else 0.0

        logger.debug("Detected key %s %s (confidence %.3f)", root, scale, confidence)
        return KeyInfo(
            root=root,
            scale=scale,
            confidence=float(np.clip(confidence, 0.0, 1.0)),
            pitch_class_distribution=hist / hist.sum(),
            alternatives=runners_up[: self.n_alternatives],
        )

    def detect_from_audio(self, audio: np.ndarray, sr: int) -> Tuple[str, str, float]:
        """
        Detect key from audio using chromagram.

        Returns:
            Tuple of (key name, scale, score)
        """
        chroma = librosa.feature.chroma_cqt(y=audio, sr=sr)
        chroma_mean = np.mean(chroma, axis=1)

        # Normalize
        if chroma_mean.sum() > 0:
            chroma_mean = chroma_mean / chroma_mean.sum()

        return self.detect_from_histogram(chroma_mean)


def detect_key(segments: Sequence[Segment]) -> Tuple[str, str]:
    """Convenience wrapper returning (key, scale)."""
    info = KeyDetector().detect(segments)
    return info.root, info.scale
