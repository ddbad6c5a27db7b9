"""Tests for the end-to-end transcription pipeline."""

import numpy as np
import pytest

from chipscribe import AnalysisOptions, InvalidAudioError, MelodyStep, PredominantResult, analyze
from chipscribe.transcription import MelodyTranscriber, segments_to_melody
from chipscribe.transcription.pipeline import WARNING_DENSE, WARNING_LOW_MONO
from audio_utils import generate_note_sequence, generate_sine_wave, make_segments


def notes_only(melody):
    return [s.note for s in melody if not s.is_rest]


class TestSegmentsToMelody:
    def test_equal_neighbours_join(self):
        segments = make_segments([(60, 0.5), (60, 0.5), (None, 0.5), (62, 0.5)])
        for seg, beats in zip(segments, [1.0, 1.0, 1.0, 1.0]):
            seg.beats = beats
        melody = segments_to_melody(segments)

        assert [(s.note, s.beats) for s in melody] == [("C4", 2.0), ("REST", 1.0), ("D4", 1.0)]
        assert all(isinstance(s, MelodyStep) for s in melody)


class TestAnalyze:
    """End-to-end transcription of synthetic recordings."""

    def test_silence(self, silence, sample_rate):
        result = analyze(silence, sample_rate)

        assert [(s.note, s.beats) for s in result.melody] == [("REST", 4.0)]
        assert result.warning == WARNING_LOW_MONO
        assert (result.key, result.scale) == ("C", "major")

    def test_pure_tone(self, a4_tone, sample_rate):
        result = analyze(a4_tone, sample_rate)

        assert [(s.note, s.beats) for s in result.melody] == [("A4", 2.0)]
        assert (result.suggested_key, result.suggested_scale) == ("A", "major")
        assert result.warning == WARNING_DENSE
        assert result.estimator_error is None
        assert result.debug["frame_source"] == "autocorrelation"

    def test_arpeggio(self, arpeggio, sample_rate):
        result = analyze(arpeggio, sample_rate)

        assert notes_only(result.melody) == ["C4", "E4", "G4"]

    def test_key_from_melody(self, sample_rate):
        audio = generate_note_sequence([261.63, 329.63, 392.0, 523.25], [0.5, 0.5, 0.5, 0.5], sample_rate)
        result = analyze(audio, sample_rate)

        assert notes_only(result.melody) == ["C4", "E4", "G4", "C5"]
        assert (result.key, result.scale) == ("C", "major")

    def test_beats_track_duration(self, sample_rate):
        audio = generate_note_sequence(
            [261.63, 0, 293.66, 329.63, 0, 392.0], [0.4, 0.3, 0.35, 0.6, 0.45, 0.7], sample_rate
        )
        options = AnalysisOptions(bpm=100, grid="sixteenth")
        result = analyze(audio, sample_rate, options)

        total_beats = sum(s.beats for s in result.melody)
        expected = len(audio) / sample_rate * 100 / 60
        assert abs(total_beats - expected) <= 0.25 / 2 + 1e-9

    def test_no_adjacent_duplicates(self, sample_rate):
        audio = generate_note_sequence(
            [440.0, 440.0, 0, 493.88, 440.0], [0.3, 0.3, 0.2, 0.4, 0.5], sample_rate
        )
        result = analyze(audio, sample_rate)

        for a, b in zip(result.melody, result.melody[1:]):
            assert a.note != b.note

    def test_beats_on_grid(self, arpeggio, sample_rate):
        options = AnalysisOptions(grid="eighth", triplets=True)
        result = analyze(arpeggio, sample_rate, options)

        unit = 1.0 / 3.0
        for step in result.melody:
            ratio = step.beats / unit
            assert ratio == pytest.approx(round(ratio)) or step.beats == pytest.approx(unit / 4)

    def test_manual_key(self, a4_tone, sample_rate):
        options = AnalysisOptions(key_mode="manual", key="D", scale="minor")
        result = analyze(a4_tone, sample_rate, options)

        assert (result.key, result.scale) == ("D", "minor")
        assert (result.suggested_key, result.suggested_scale) == ("A", "major")
        assert notes_only(result.melody) == ["A4"]

    def test_flat_spelling_in_flat_key(self, sample_rate):
        audio = generate_sine_wave(466.16, 1.0, sample_rate)
        options = AnalysisOptions(key_mode="manual", key="F", scale="major")
        result = analyze(audio, sample_rate, options)

        assert notes_only(result.melody) == ["Bb4"]

    def test_out_of_band_pitch_is_rest(self, sample_rate):
        audio = generate_sine_wave(110.0, 1.0, sample_rate)
        result = analyze(audio, sample_rate, AnalysisOptions(min_hz=200.0))

        assert notes_only(result.melody) == []

    def test_stereo_input(self, a4_tone, sample_rate):
        result = analyze(np.stack([a4_tone, a4_tone]), sample_rate)
        assert notes_only(result.melody) == ["A4"]

    def test_debug_fields(self, a4_tone, sample_rate):
        debug = analyze(a4_tone, sample_rate).debug

        for key in (
            "frame_source", "frame_count", "voiced_ratio", "initial_voiced_ratio",
            "rms_threshold", "clarity_threshold", "adaptive_thresholds", "gap_filled_frames",
            "raw_segments", "clean_segments", "smoothing_window", "key_confidence",
        ):
            assert key in debug
        assert debug["voiced_ratio"] == 1.0

    def test_invalid_input(self, sample_rate):
        with pytest.raises(InvalidAudioError):
            analyze(np.zeros(0), sample_rate)
        with pytest.raises(InvalidAudioError):
            analyze(np.zeros(100), -1)


class TestFullMix:
    """Full-mix transcription of a melody over a bass line."""

    def mix(self, sample_rate):
        melody = generate_note_sequence([523.25, 587.33, 659.26, 523.25], [0.5, 0.5, 0.5, 0.5], sample_rate, 0.4)
        bass = generate_sine_wave(130.81, 2.0, sample_rate, 0.4)
        return melody + bass[: len(melody)]

    def test_harmonic_sum_path(self, sample_rate):
        options = AnalysisOptions(analysis_mode="full_mix", min_hz=150.0, max_hz=1800.0)
        result = analyze(self.mix(sample_rate), sample_rate, options)

        assert result.debug["frame_source"] == "harmonic_sum"
        notes = notes_only(result.melody)
        assert "C5" in notes
        assert "E5" in notes
        assert "C3" not in notes

    def test_external_track(self, sample_rate):
        audio = self.mix(sample_rate)
        n = len(audio) // 512
        predominant = PredominantResult(
            backend="librosa",
            hop_seconds=512 / sample_rate,
            pitch_hz=[523.25] * n,
            pitch_confidence=[0.9] * n,
        )
        options = AnalysisOptions(analysis_mode="full_mix", min_hz=150.0, max_hz=1800.0)
        result = analyze(audio, sample_rate, options, predominant)

        assert result.debug["frame_source"] == "librosa"
        assert notes_only(result.melody) == ["C5"]
        assert result.estimator_error is None

    def test_malformed_external_track_falls_back(self, sample_rate):
        predominant = PredominantResult(backend="librosa", hop_seconds=0.0, pitch_hz=[440.0], pitch_confidence=[1.0])
        options = AnalysisOptions(analysis_mode="full_mix", min_hz=150.0, max_hz=1800.0)
        result = analyze(self.mix(sample_rate), sample_rate, options, predominant)

        assert result.debug["frame_source"] == "harmonic_sum"
        assert "invalid hop" in result.estimator_error
        assert len(notes_only(result.melody)) > 0

    @pytest.mark.parametrize(
        "hop, pitch",
        [("0.02", [440.0] * 50), (512 / 22050, ["n/a"] * 50), (None, [440.0] * 50)],
    )
    def test_non_numeric_external_track_falls_back(self, sample_rate, hop, pitch):
        predominant = PredominantResult(backend="ext", hop_seconds=hop, pitch_hz=pitch, pitch_confidence=[0.9] * 50)
        options = AnalysisOptions(analysis_mode="full_mix", min_hz=150.0, max_hz=1800.0)
        result = analyze(self.mix(sample_rate), sample_rate, options, predominant)

        assert result.debug["frame_source"] == "harmonic_sum"
        assert result.estimator_error.startswith("ext: ")
        assert len(notes_only(result.melody)) > 0

    def test_backend_error_is_reported(self, sample_rate):
        n = 200
        predominant = PredominantResult(
            backend="builtin",
            hop_seconds=512 / sample_rate,
            pitch_hz=[523.25] * n,
            pitch_confidence=[0.9] * n,
            error="librosa: boom",
        )
        options = AnalysisOptions(analysis_mode="full_mix", min_hz=150.0, max_hz=1800.0)
        result = analyze(self.mix(sample_rate), sample_rate, options, predominant)

        assert result.estimator_error == "librosa: boom"
        assert result.debug["frame_source"] == "builtin"

    def test_transcriber_sanitizes_options(self):
        transcriber = MelodyTranscriber(AnalysisOptions(bpm=-1, analysis_mode="bogus"))
        assert transcriber.options.bpm == 120.0
        assert transcriber.options.analysis_mode == "monophonic"
