"""Frame-level pitch detectors.

Two estimators work on framed audio (shape ``(n_frames, frame_size)``):

- ``AutocorrelationPitchDetector``: McLeod-style normalized square
  difference function with key-maximum picking and parabolic refinement.
  Returns a pitch and a clarity in [0, 1] per frame. Pure numpy.
- ``HarmonicSumEstimator``: predominant-pitch estimator for full mixes.
  Scores MIDI-spaced candidates by Goertzel power at the fundamental and
  its 2nd/3rd harmonics, with a register bias and a continuity prior.
"""

from typing import List, Optional, Tuple

import numpy as np

from ..core.music import freq_to_midi_float, midi_to_freq

_BATCH_FRAMES = 512


def frame_signal(audio: np.ndarray, frame_size: int, hop_size: int) -> np.ndarray:
    """Slice a mono signal into overlapping frames.

    Only full frames are produced; a signal shorter than one frame gives
    an empty ``(0, frame_size)`` array.
    """
    y = np.asarray(audio, dtype=np.float32).reshape(-1)
    if len(y) < frame_size:
        return np.zeros((0, frame_size), dtype=np.float32)
    windows = np.lib.stride_tricks.sliding_window_view(y, frame_size)
    return windows[::hop_size]


def frame_rms(frames: np.ndarray) -> np.ndarray:
    if frames.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    return np.sqrt(np.mean(frames.astype(np.float64) ** 2, axis=1))


class AutocorrelationPitchDetector:
    """Monophonic pitch and clarity per frame (McLeod pitch method)."""

    def __init__(self, clarity_threshold: float = 0.9, min_rms: float = 1e-6):
        """
        Args:
            clarity_threshold: Fraction of the highest key maximum a peak must
                reach to be chosen (lower = prefer shorter periods)
            min_rms: Frames quieter than this report no pitch
        """
        self.clarity_threshold = clarity_threshold
        self.min_rms = min_rms

    def nsdf(self, frames: np.ndarray) -> np.ndarray:
        """Normalized square difference function for each frame."""
        x = np.asarray(frames, dtype=np.float64)
        n_frames, width = x.shape
        n_fft = 1 << int(np.ceil(np.log2(2 * width - 1)))

        spectrum = np.fft.rfft(x, n=n_fft, axis=1)
        acf = np.fft.irfft(spectrum * np.conj(spectrum), n=n_fft, axis=1)[:, :width]

        # m(tau) = sum_{j < W - tau} x_j^2 + sum_{j >= tau} x_j^2
        csum = np.zeros((n_frames, width + 1))
        np.cumsum(x**2, axis=1, out=csum[:, 1:])
        taus = np.arange(width)
        m = csum[:, width - taus] + (csum[:, width][:, None] - csum[:, taus])

        with np.errstate(divide="ignore", invalid="ignore"):
            out = np.where(m > 1e-12, 2.0 * acf / m, 0.0)
        return out

    @staticmethod
    def key_maxima(nsdf: np.ndarray) -> List[int]:
        """Index of the highest point of every positive lobe after a zero crossing."""
        positive = nsdf > 0
        rising = np.flatnonzero(~positive[:-1] & positive[1:]) + 1
        falling = np.flatnonzero(positive[:-1] & ~positive[1:]) + 1
        keys = []
        for start in rising:
            pos = np.searchsorted(falling, start, side="right")
            if pos >= len(falling):
                break
            end = falling[pos]
            keys.append(int(start + np.argmax(nsdf[start:end])))
        return keys

    @staticmethod
    def _refine(index: int, data: np.ndarray) -> Tuple[float, float]:
        """Parabolic interpolation around a peak -> (lag, height)."""
        if index <= 0 or index >= len(data) - 1:
            return float(index), float(data[index])
        y0, y1, y2 = data[index - 1], data[index], data[index + 1]
        denom = y0 - 2.0 * y1 + y2
        if denom == 0:
            return float(index), float(y1)
        delta = 0.5 * (y0 - y2) / denom
        return index + delta, float(y1 - 0.25 * (y0 - y2) * delta)

    def detect(self, frames: np.ndarray, sr: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Detect pitch for every frame.

        Args:
            frames: Framed audio, shape (n_frames, frame_size)
            sr: Sample rate

        Returns:
            Tuple of (pitch in Hz, clarity); 0 where no pitch was found
        """
        n_frames = frames.shape[0]
        pitch = np.zeros(n_frames)
        clarity = np.zeros(n_frames)
        if n_frames == 0:
            return pitch, clarity

        rms = frame_rms(frames)
        for start in range(0, n_frames, _BATCH_FRAMES):
            stop = min(start + _BATCH_FRAMES, n_frames)
            batch = self.nsdf(frames[start:stop])
            for offset, curve in enumerate(batch):
                idx = start + offset
                if rms[idx] < self.min_rms:
                    continue
                keys = self.key_maxima(curve)
                if not keys:
                    continue
                best = max(curve[k] for k in keys)
                chosen = next(k for k in keys if curve[k] >= self.clarity_threshold * best)
                lag, height = self._refine(chosen, curve)
                if lag <= 0:
                    continue
                pitch[idx] = sr / lag
                clarity[idx] = min(max(height, 0.0), 1.0)

        return pitch, clarity

    def find_pitch(self, frame: np.ndarray, sr: int) -> Tuple[float, float]:
        """Pitch and clarity of a single frame."""
        pitch, clarity = self.detect(np.asarray(frame, dtype=np.float32)[None, :], sr)
        return float(pitch[0]), float(clarity[0])


def goertzel_power(frames: np.ndarray, freqs: np.ndarray, sr: int) -> np.ndarray:
    """Power of each frame at each frequency.

    This is the value a Goertzel resonator tuned to each frequency holds
    after consuming the whole frame, computed for all resonators at once
    as ``|sum_n x[n] exp(-i w n)|^2``.

    Args:
        frames: Framed audio, shape (n_frames, frame_size)
        freqs: Resonator frequencies in Hz
        sr: Sample rate

    Returns:
        Array of shape (n_frames, len(freqs))
    """
    freqs = np.asarray(freqs, dtype=np.float64)
    n = frames.shape[1]
    phase = np.outer(np.arange(n), 2.0 * np.pi * freqs / sr)
    x = np.asarray(frames, dtype=np.float64)
    real = x @ np.cos(phase)
    imag = x @ np.sin(phase)
    return real**2 + imag**2


class HarmonicSumEstimator:
    """Predominant pitch for full mixes by harmonic summation.

    Each MIDI-spaced candidate in ``[min_hz, max_hz]`` scores
    ``P(f) + 0.5 P(2f) + 0.33 P(3f)`` scaled by a bias toward the upper-mid
    register, and by a continuity prior that decays exponentially with the
    distance (in semitones) from the previous frame's pitch. Confidence is
    the normalized margin between the best and second-best candidates.
    """

    HARMONIC_WEIGHTS = (1.0, 0.5, 0.33)
    REGISTER_CENTER_HZ = 520.0
    REGISTER_WIDTH_OCTAVES = 1.2
    REGISTER_WEIGHT = 0.35
    CONTINUITY_SEMITONES = 8.0
    CONTINUITY_WEIGHT = 0.5
    MIN_RMS = 1e-4

    def __init__(self, sr: int, min_hz: float, max_hz: float):
        self.sr = sr
        lo = freq_to_midi_float(min_hz)
        hi = freq_to_midi_float(max_hz)
        if lo is None or hi is None:
            self.candidates = np.zeros(0, dtype=int)
        else:
            hi = min(hi, freq_to_midi_float(sr / 2.0 * 0.95))
            self.candidates = np.arange(int(np.ceil(lo)), int(np.floor(hi)) + 1)
        self.freqs = np.array([midi_to_freq(m) for m in self.candidates])

        octaves = np.log2(np.maximum(self.freqs, 1e-9) / self.REGISTER_CENTER_HZ)
        self.register_bias = 1.0 + self.REGISTER_WEIGHT * np.exp(
            -0.5 * (octaves / self.REGISTER_WIDTH_OCTAVES) ** 2
        )

    def salience(self, frames: np.ndarray) -> np.ndarray:
        """Harmonic-sum score per frame and candidate, before the continuity prior."""
        n_frames = frames.shape[0]
        n_cand = len(self.candidates)
        scores = np.zeros((n_frames, n_cand))
        if n_frames == 0 or n_cand == 0:
            return scores

        width = frames.shape[1]
        window = np.hanning(width)
        windowed = frames * window
        norm = float(np.sum(window)) ** 2
        nyquist = self.sr / 2.0

        for harmonic, weight in enumerate(self.HARMONIC_WEIGHTS, start=1):
            hfreqs = self.freqs * harmonic
            valid = hfreqs < nyquist
            if not np.any(valid):
                continue
            power = goertzel_power(windowed, hfreqs[valid], self.sr) / norm
            scores[:, valid] += weight * power

        return scores * self.register_bias

    def estimate(self, frames: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Estimate the predominant pitch of every frame.

        Returns:
            Tuple of (pitch Hz, confidence, viable mask). Frames without a
            viable candidate have pitch 0 and confidence 0.
        """
        n_frames = frames.shape[0]
        pitch = np.zeros(n_frames)
        confidence = np.zeros(n_frames)
        viable = np.zeros(n_frames, dtype=bool)
        if n_frames == 0 or len(self.candidates) == 0:
            return pitch, confidence, viable

        rms = frame_rms(frames)
        previous: Optional[float] = None

        for start in range(0, n_frames, _BATCH_FRAMES):
            stop = min(start + _BATCH_FRAMES, n_frames)
            batch_scores = self.salience(frames[start:stop])
            for offset, scores in enumerate(batch_scores):
                idx = start + offset
                if rms[idx] < self.MIN_RMS:
                    continue
                if previous is not None:
                    distance = np.abs(self.candidates - previous)
                    prior = np.exp(-distance / self.CONTINUITY_SEMITONES)
                    scores = scores * ((1.0 - self.CONTINUITY_WEIGHT) + self.CONTINUITY_WEIGHT * prior)

                best_idx = int(np.argmax(scores))
                best = scores[best_idx]
                if best <= 1e-12:
                    continue
                second = np.max(np.delete(scores, best_idx)) if len(scores) > 1 else 0.0
                margin = (best - second) / best
                if margin <= 0:
                    continue

                midi = self.candidates[best_idx] + self._interpolate(scores, best_idx)
                pitch[idx] = midi_to_freq(midi)
                confidence[idx] = margin
                viable[idx] = True
                previous = midi

        return pitch, confidence, viable

    @staticmethod
    def _interpolate(scores: np.ndarray, idx: int) -> float:
        """Fractional semitone offset from a parabola through neighbouring scores."""
        if idx <= 0 or idx >= len(scores) - 1:
            return 0.0
        y0, y1, y2 = scores[idx - 1], scores[idx], scores[idx + 1]
        denom = y0 - 2.0 * y1 + y2
        if denom == 0:
            return 0.0
        return float(np.clip(0.5 * (y0 - y2) / denom, -0.5, 0.5))
