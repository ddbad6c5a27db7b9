"""Shared fixtures."""

import numpy as np
import pytest

from audio_utils import generate_note_sequence, generate_sine_wave


@pytest.fixture
def sample_rate():
    return 22050


@pytest.fixture
def a4_tone(sample_rate):
    """One second of A4 (440 Hz)."""
    return generate_sine_wave(440.0, 1.0, sample_rate)


@pytest.fixture
def arpeggio(sample_rate):
    """C4, E4, G4, half a second each."""
    return generate_note_sequence([261.63, 329.63, 392.0], [0.5, 0.5, 0.5], sample_rate)


@pytest.fixture
def silence(sample_rate):
    return np.zeros(2 * sample_rate, dtype=np.float32)
