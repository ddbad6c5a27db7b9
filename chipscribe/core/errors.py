"""Exceptions raised by the transcription core."""


class InvalidAudioError(ValueError):
    """The input buffer or sample rate cannot be analyzed."""


class EstimatorError(RuntimeError):
    """An external pitch/tempo/key estimator failed or returned malformed data."""
