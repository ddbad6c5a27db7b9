"""Tests for segment cleanup.

Tests for:
- Tiny-segment merging between equal pitches
- Short-segment absorption
- De-glitching of isolated outliers (full mix)
- Median contour smoothing (full mix)
"""

import pytest

from chipscribe.processing import CleanupConfig, CleanupStats, SegmentCleanup, join_segments
from audio_utils import make_segment, make_segments


def summary(segments):
    return [(s.midi, round(s.duration_sec, 6)) for s in segments]


class TestJoinSegments:
    def test_weighted_pitch(self):
        a = make_segment(60, 0.3)
        b = make_segment(61, 0.1, 0.4)
        b.midi_float = 61.0
        joined = join_segments(a, b, gap_sec=0.1)

        assert joined.duration_sec == pytest.approx(0.5)
        assert joined.midi == 60
        assert joined.midi_float == pytest.approx(60.25)

    def test_inputs_untouched(self):
        a = make_segment(60, 0.3)
        join_segments(a, make_segment(60, 0.3, 0.3))
        assert a.duration_sec == 0.3


class TestMergeTinySegments:
    """A short gap or blip between two equal pitches disappears."""

    def test_short_rest_between_equal_notes(self):
        segments = make_segments([(60, 0.5), (None, 0.03), (60, 0.5)])
        result = SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)

        assert summary(result) == [(60, 1.03)]
        assert result[0].start_sec == 0.0

    def test_short_blip_between_equal_notes(self):
        segments = make_segments([(60, 0.5), (62, 0.05), (60, 0.5)])
        result = SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)

        assert summary(result) == [(60, 1.05)]

    def test_long_rest_is_kept(self):
        segments = make_segments([(60, 0.5), (None, 0.3), (60, 0.5)])
        result = SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)

        assert len(result) == 3

    def test_different_neighbours_are_kept(self):
        segments = make_segments([(60, 0.5), (None, 0.03), (62, 0.5)])
        result = SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)

        assert len(result) == 3

    def test_chained_merges(self):
        segments = make_segments([
            (60, 0.3), (None, 0.02), (60, 0.3), (None, 0.02), (60, 0.3),
        ])
        result = SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)

        assert summary(result) == [(60, 0.94)]

    def test_input_untouched(self):
        segments = make_segments([(60, 0.5), (None, 0.03), (60, 0.5)])
        SegmentCleanup(min_note_ms=80).merge_tiny_segments(segments)
        assert len(segments) == 3
        assert segments[0].duration_sec == 0.5


class TestAbsorbShortSegments:
    """Anything still shorter than the minimum joins a neighbour."""

    def test_short_note_extends_previous(self):
        segments = make_segments([(60, 0.5), (64, 0.05), (67, 0.5)])
        result = SegmentCleanup(min_note_ms=80).absorb_short_segments(segments)

        assert summary(result) == [(60, 0.55), (67, 0.5)]

    def test_leading_short_extends_next(self):
        segments = make_segments([(64, 0.05), (67, 0.5)])
        result = SegmentCleanup(min_note_ms=80).absorb_short_segments(segments)

        assert summary(result) == [(67, 0.55)]
        assert result[0].start_sec == 0.0

    def test_equal_neighbours_coalesce(self):
        segments = make_segments([(60, 0.5), (None, 0.05), (None, 0.3), (62, 0.5)])
        result = SegmentCleanup(min_note_ms=80).absorb_short_segments(segments)

        assert summary(result) == [(60, 0.55), (None, 0.3), (62, 0.5)]

    def test_all_short_segments(self):
        segments = make_segments([(60, 0.02), (62, 0.02)])
        result = SegmentCleanup(min_note_ms=80).absorb_short_segments(segments)

        assert len(result) == 1
        assert result[0].duration_sec == pytest.approx(0.04)


class TestDeglitch:
    """Isolated octave-style outliers in a full mix are pulled back in line."""

    def test_outlier_replaced_by_neighbour_average(self):
        segments = make_segments([(60, 0.3), (72, 0.1), (62, 0.3)])
        result, changed = SegmentCleanup(min_note_ms=80, full_mix=True).deglitch(segments)

        assert changed == 1
        assert [s.midi for s in result] == [60, 61, 62]
        assert result[1].note_name == "C#4"

    def test_long_segment_is_not_a_glitch(self):
        segments = make_segments([(60, 0.3), (72, 0.4), (62, 0.3)])
        _, changed = SegmentCleanup(min_note_ms=80, full_mix=True).deglitch(segments)

        assert changed == 0

    def test_small_deviation_is_kept(self):
        segments = make_segments([(60, 0.3), (63, 0.1), (61, 0.3)])
        _, changed = SegmentCleanup(min_note_ms=80, full_mix=True).deglitch(segments)

        assert changed == 0

    def test_glitch_coalesces_with_equal_neighbours(self):
        segments = make_segments([(60, 0.3), (72, 0.1), (60, 0.3)])
        result, changed = SegmentCleanup(min_note_ms=80, full_mix=True).deglitch(segments)

        assert changed == 1
        assert summary(result) == [(60, 0.7)]


class TestSmoothContour:
    def test_steady_contour_uses_narrow_window(self):
        segments = make_segments([(60, 0.3), (62, 0.3), (64, 0.3), (65, 0.3)])
        result, changed, window = SegmentCleanup(full_mix=True).smooth_contour(segments)

        assert window == 3
        assert changed == 0
        assert [s.midi for s in result] == [60, 62, 64, 65]

    def test_jumpy_contour_uses_wide_window(self):
        segments = make_segments([(60, 0.3), (67, 0.3), (60, 0.3), (67, 0.3), (60, 0.3)])
        _, _, window = SegmentCleanup(full_mix=True).smooth_contour(segments)

        assert window == 5

    def test_isolated_spike_is_flattened(self):
        segments = make_segments([(60, 0.3), (61, 0.3), (66, 0.3), (61, 0.3), (60, 0.3)])
        result, changed, _ = SegmentCleanup(full_mix=True).smooth_contour(segments)

        assert changed >= 1
        assert 66 not in [s.midi for s in result]

    def test_rests_are_skipped(self):
        segments = make_segments([(60, 0.3), (None, 0.3), (62, 0.3), (None, 0.3), (64, 0.3)])
        result, _, _ = SegmentCleanup(full_mix=True).smooth_contour(segments)

        assert [s.is_rest for s in result] == [False, True, False, True, False]

    def test_too_few_voiced(self):
        segments = make_segments([(60, 0.3), (None, 0.3), (62, 0.3)])
        result, changed, window = SegmentCleanup(full_mix=True).smooth_contour(segments)

        assert (changed, window) == (0, 0)
        assert len(result) == 3


class TestCleanupPipeline:
    """Tests for the combined cleanup pass."""

    def test_stats(self):
        segments = make_segments([
            (60, 0.5), (None, 0.03), (60, 0.5), (64, 0.05), (67, 0.5),
        ])
        result, stats = SegmentCleanup(min_note_ms=80).cleanup(segments, return_stats=True)

        assert isinstance(stats, CleanupStats)
        assert stats.original_count == 5
        assert stats.merged_tiny == 2
        assert stats.absorbed_short == 1
        assert stats.final_count == len(result) == 2
        assert stats.total_removed == 3

    def test_no_short_segments_remain(self):
        segments = make_segments([
            (60, 0.2), (62, 0.03), (None, 0.04), (64, 0.2), (65, 0.01), (67, 0.3),
        ])
        result = SegmentCleanup(min_note_ms=80).cleanup(segments)

        assert all(s.duration_sec >= 0.08 for s in result)
        assert sum(s.duration_sec for s in result) == pytest.approx(0.78)

    def test_idempotent(self):
        segments = make_segments([
            (60, 0.2), (None, 0.03), (60, 0.2), (62, 0.05), (64, 0.3),
            (None, 0.5), (67, 0.04), (69, 0.3), (69, 0.2),
        ])
        cleanup = SegmentCleanup(min_note_ms=80)
        once = cleanup.cleanup(segments)
        twice = cleanup.cleanup(once)

        assert summary(once) == summary(twice)

    def test_no_adjacent_equal_segments(self):
        segments = make_segments([(60, 0.2), (60, 0.2), (None, 0.2), (None, 0.2), (62, 0.2)])
        result = SegmentCleanup(min_note_ms=80).cleanup(segments)

        for a, b in zip(result, result[1:]):
            assert not a.same_sound(b)

    def test_full_mix_passes_run(self):
        segments = make_segments([(60, 0.3), (72, 0.1), (62, 0.3), (64, 0.3)])
        result, stats = SegmentCleanup(min_note_ms=80, full_mix=True).cleanup(segments, return_stats=True)

        assert stats.deglitched == 1
        assert stats.smoothing_window in (3, 5)
        assert 72 not in [s.midi for s in result]

    def test_custom_config(self):
        config = CleanupConfig(min_note_ms=200)
        segments = make_segments([(60, 0.5), (64, 0.15), (67, 0.5)])
        result = SegmentCleanup(config=config).cleanup(segments)

        assert summary(result) == [(60, 0.65), (67, 0.5)]
