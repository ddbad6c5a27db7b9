"""Tests for core types, options and music helpers."""

import math

import numpy as np
import pytest

from chipscribe.core import AnalysisOptions, ContinuityOptions, MelodyStep, Segment, SuggestedAnalysisSettings
from chipscribe.core.music import (
    fold_octave,
    freq_to_midi_float,
    grid_to_beats,
    limit_jump,
    midi_to_freq,
    midi_to_note_name,
    nearest_scale_midi,
    note_name_to_midi,
    scale_pitch_classes,
    seconds_per_beat,
)


class TestPitchConversion:
    """Tests for frequency, MIDI and note-name conversion."""

    def test_freq_to_midi(self):
        assert freq_to_midi_float(440.0) == pytest.approx(69.0)
        assert freq_to_midi_float(880.0) == pytest.approx(81.0)
        assert round(freq_to_midi_float(261.63)) == 60

    def test_freq_to_midi_invalid(self):
        assert freq_to_midi_float(0.0) is None
        assert freq_to_midi_float(-10.0) is None
        assert freq_to_midi_float(float("nan")) is None

    def test_midi_to_freq(self):
        assert midi_to_freq(69) == 440.0
        assert abs(midi_to_freq(60) - 261.63) < 0.01

    def test_note_names(self):
        assert midi_to_note_name(60) == "C4"
        assert midi_to_note_name(69) == "A4"
        assert midi_to_note_name(61) == "C#4"
        assert midi_to_note_name(70, prefer_flats=True) == "Bb4"
        assert midi_to_note_name(0) == "C-1"

    def test_parse_note_names(self):
        assert note_name_to_midi("C4") == 60
        assert note_name_to_midi("C#4") == 61
        assert note_name_to_midi("Db4") == 61
        assert note_name_to_midi("Eb-1") == 3
        assert note_name_to_midi("H4") is None
        assert note_name_to_midi("REST") is None

    def test_round_trip_names(self):
        for midi in (21, 48, 60, 75, 108):
            assert note_name_to_midi(midi_to_note_name(midi)) == midi
            assert note_name_to_midi(midi_to_note_name(midi, prefer_flats=True)) == midi


class TestScales:
    """Tests for scale membership and folding helpers."""

    def test_scale_pitch_classes(self):
        assert scale_pitch_classes("C", "major") == [0, 2, 4, 5, 7, 9, 11]
        assert scale_pitch_classes("A", "minor") == [9, 11, 0, 2, 4, 5, 7]
        assert scale_pitch_classes("Bb", "major")[0] == 10

    def test_nearest_scale_midi_ties_go_low(self):
        # C#4 is equidistant from C4 and D4
        assert nearest_scale_midi(61, "C", "major") == 60
        assert nearest_scale_midi(62, "C", "major") == 62

    def test_limit_jump(self):
        assert limit_jump(80, 60, 8) == 68
        assert limit_jump(40, 60, 8) == 52
        assert limit_jump(80, None, 8) == 80

    def test_fold_octave_into_range(self):
        assert fold_octave(90, None, (57, 88)) == 78
        assert fold_octave(30, None, (57, 88)) == 66

    def test_fold_octave_prefers_previous(self):
        # 52 and 64 are both in range; 64 is nearer the previous note
        assert fold_octave(40, 60, (36, 84)) == 64

    def test_fold_octave_bounds_jump(self):
        assert fold_octave(71, 60, (60, 72), max_jump=7) == 67

    def test_grid_to_beats(self):
        assert grid_to_beats("quarter", False) == 1.0
        assert grid_to_beats("eighth", False) == 0.5
        assert grid_to_beats("sixteenth", False) == 0.25
        assert grid_to_beats("eighth", True) == pytest.approx(1.0 / 3.0)

    def test_seconds_per_beat(self):
        assert seconds_per_beat(120) == 0.5
        assert seconds_per_beat(0) == 0.5
        assert seconds_per_beat(float("nan")) == 0.5


class TestModels:
    """Tests for Segment and MelodyStep."""

    def test_segment_end(self):
        seg = Segment(is_rest=False, start_sec=0.5, duration_sec=0.25, midi=60)
        assert seg.end_sec == 0.75

    def test_same_sound(self):
        a = Segment(is_rest=False, start_sec=0, duration_sec=1, midi=60)
        b = Segment(is_rest=False, start_sec=1, duration_sec=1, midi=60)
        c = Segment(is_rest=False, start_sec=2, duration_sec=1, midi=62)
        r = Segment(is_rest=True, start_sec=3, duration_sec=1)
        assert a.same_sound(b)
        assert not a.same_sound(c)
        assert not a.same_sound(r)
        assert r.same_sound(Segment(is_rest=True, start_sec=4, duration_sec=1))

    def test_melody_step_to_dict(self):
        assert MelodyStep("C4", 1.0).to_dict() == {"note": "C4", "beats": 1.0}
        assert MelodyStep("C4", 1.0, 104).to_dict() == {"note": "C4", "beats": 1.0, "velocity": 104}
        assert MelodyStep("REST", 0.5).is_rest


class TestAnalysisOptions:
    """Tests for option parsing and sanitizing."""

    def test_defaults(self):
        opts = AnalysisOptions()
        assert opts.bpm == 120.0
        assert opts.grid == "eighth"
        assert opts.analysis_mode == "monophonic"
        assert not opts.full_mix

    def test_from_dict_accepts_camel_case(self):
        opts = AnalysisOptions.from_dict({"analysisMode": "full_mix", "minNoteMs": 120, "bpm": 90, "unknown": 1})
        assert opts.full_mix
        assert opts.min_note_ms == 120
        assert opts.bpm == 90

    def test_to_dict_uses_camel_case(self):
        data = AnalysisOptions().to_dict()
        assert data["rmsThreshold"] == 0.02
        assert data["snapToleranceCents"] == 50.0
        assert "rms_threshold" not in data

    def test_sanitized_replaces_invalid_values(self):
        opts = AnalysisOptions(
            bpm=-5,
            grid="whole",
            analysis_mode="karaoke",
            rms_threshold=float("nan"),
            clarity_threshold=3.0,
            key="H",
            scale="dorian",
            min_hz=3000.0,
            max_hz=100.0,
        ).sanitized()
        assert opts.bpm == 120.0
        assert opts.grid == "eighth"
        assert opts.analysis_mode == "monophonic"
        assert opts.rms_threshold == 0.02
        assert opts.clarity_threshold == 1.0
        assert opts.key == "C"
        assert opts.scale == "major"
        assert (opts.min_hz, opts.max_hz) == (100.0, 3000.0)

    def test_sanitized_keeps_numpy_scalars(self):
        opts = AnalysisOptions(
            bpm=np.float32(100.0),
            rms_threshold=np.float64(0.01),
            min_note_ms=np.int64(120),
            min_hz=np.float32(150.0),
        ).sanitized()
        assert opts.bpm == 100.0
        assert opts.rms_threshold == 0.01
        assert opts.min_note_ms == 120.0
        assert opts.min_hz == 150.0
        assert ContinuityOptions(intensity=np.float32(80.0)).clamped_intensity == 80.0

    def test_suggested_settings_apply(self):
        suggestion = SuggestedAnalysisSettings(
            bpm=95.0,
            grid="sixteenth",
            triplets=False,
            analysis_mode="full_mix",
            rms_threshold=0.01,
            clarity_threshold=0.5,
            min_hz=150.0,
            max_hz=1800.0,
            min_note_ms=110.0,
        )
        base = AnalysisOptions(key_mode="manual", key="D")
        applied = suggestion.apply_to(base)
        assert applied.bpm == 95.0
        assert applied.full_mix
        assert applied.key == "D"
        assert base.bpm == 120.0


class TestContinuityOptions:
    def test_intensity_is_clamped(self):
        assert ContinuityOptions(intensity=150).clamped_intensity == 100.0
        assert ContinuityOptions(intensity=-3).clamped_intensity == 0.0
        assert ContinuityOptions(intensity=math.inf).clamped_intensity == 60.0

    def test_mode(self):
        assert ContinuityOptions().enabled
        assert not ContinuityOptions(mode="natural").enabled
