"""Signal preparation: validation, mono downmix and lead emphasis."""

import logging

import numpy as np
import scipy.signal

from ..core.errors import InvalidAudioError

logger = logging.getLogger(__name__)

LEAD_EMPHASIS_CUTOFF_HZ = 180.0
LEAD_EMPHASIS_ORDER = 2
SOFT_CLIP_DRIVE = 2.5


def validate_signal(audio, sr) -> None:
    """Raise InvalidAudioError for buffers or sample rates we cannot analyze."""
    if sr is None or not np.isfinite(sr) or sr <= 0:
        raise InvalidAudioError(f"Invalid sample rate: {sr}")
    if audio is None:
        raise InvalidAudioError("Audio buffer is missing")
    arr = np.asarray(audio)
    if arr.ndim > 2:
        raise InvalidAudioError(f"Audio must be 1-D or (channels, samples), got shape {arr.shape}")
    if arr.size == 0 or arr.shape[-1] == 0:
        raise InvalidAudioError("Audio buffer is empty")


def downmix_to_mono(audio: np.ndarray) -> np.ndarray:
    """Average channels into a mono float32 signal.

    Accepts a 1-D signal or a (channels, samples) array. Non-finite
    samples are replaced with zeros.
    """
    arr = np.asarray(audio, dtype=np.float32)
    if arr.ndim == 2:
        arr = arr.mean(axis=0)
    return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0).astype(np.float32)


def _soft_clip(y: np.ndarray, drive: float = SOFT_CLIP_DRIVE) -> np.ndarray:
    """tanh soft clip normalized so that full scale maps to full scale."""
    peak = float(np.max(np.abs(y))) if y.size else 0.0
    if peak <= 0:
        return y
    x = y / peak
    z = np.tanh(drive * x) / (np.tanh(drive) + 1e-9)
    return (z * peak).astype(np.float32)


def lead_emphasis(
    audio: np.ndarray,
    sr: int,
    cutoff_hz: float = LEAD_EMPHASIS_CUTOFF_HZ,
    order: int = LEAD_EMPHASIS_ORDER,
) -> np.ndarray:
    """High-pass and soft-clip a dense mix so the lead line dominates.

    Args:
        audio: Mono signal
        sr: Sample rate
        cutoff_hz: High-pass cutoff, removes bass and kick energy
        order: Butterworth filter order

    Returns:
        Filtered signal (float32, same length)
    """
    y = np.asarray(audio, dtype=np.float32)
    nyquist = sr / 2.0
    if y.size == 0 or cutoff_hz <= 0 or cutoff_hz >= nyquist:
        return y.copy()

    sos = scipy.signal.butter(order, cutoff_hz, btype="highpass", fs=sr, output="sos")
    filtered = scipy.signal.sosfilt(sos, y).astype(np.float32)
    return _soft_clip(filtered)
