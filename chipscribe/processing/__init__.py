"""Processing layer - Segment cleanup and quantization."""

from .cleanup import CleanupConfig, CleanupStats, SegmentCleanup, join_segments
from .quantize import PitchSnapper, Quantizer, expected_range, jump_guard_blocks

__all__ = [
    "CleanupConfig",
    "CleanupStats",
    "SegmentCleanup",
    "join_segments",
    "PitchSnapper",
    "Quantizer",
    "expected_range",
    "jump_guard_blocks",
]
