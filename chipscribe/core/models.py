"""Data types flowing through the transcription and arrangement pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import REST


@dataclass
class Frame:
    """Per-hop analysis result. Pipeline-internal."""

    time_sec: float
    duration_sec: float
    rms: float
    clarity: float
    pitch_hz: Optional[float] = None
    midi_float: Optional[float] = None  # undefined when is_rest
    is_rest: bool = True


@dataclass
class Segment:
    """A maximal run of frames sharing voicing state and rounded pitch."""

    is_rest: bool
    start_sec: float
    duration_sec: float
    beats: float = 0.0  # set by quantization
    midi: Optional[int] = None
    midi_float: Optional[float] = None
    note_name: str = REST

    @property
    def end_sec(self) -> float:
        return self.start_sec + self.duration_sec

    def same_sound(self, other: "Segment") -> bool:
        """True when both are rests or both voiced at the same MIDI pitch."""
        if self.is_rest or other.is_rest:
            return self.is_rest and other.is_rest
        return self.midi == other.midi


@dataclass
class MelodyStep:
    """One quantized melody event: a note name or REST for some beats."""

    note: str
    beats: float
    velocity: Optional[int] = None

    @property
    def is_rest(self) -> bool:
        return self.note == REST

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"note": self.note, "beats": self.beats}
        if self.velocity is not None:
            data["velocity"] = self.velocity
        return data


class TrackRole(str, Enum):
    """Arrangement track roles."""

    LEAD = "lead"
    HARMONY = "harmony"
    BASS = "bass"
    DRUMS = "drums"


@dataclass
class ArrangementTrack:
    """A single voice of an arrangement."""

    role: TrackRole
    name: str
    tone_preset: str
    midi_channel: int
    steps: List[MelodyStep]
    midi_program: Optional[int] = None
    pan: Optional[float] = None

    def total_beats(self) -> float:
        return sum(s.beats for s in self.steps)


@dataclass
class Arrangement:
    """Multi-track arrangement derived from a lead melody."""

    bpm: float
    key: str
    scale: str
    tracks: List[ArrangementTrack] = field(default_factory=list)

    def track(self, role: TrackRole) -> Optional[ArrangementTrack]:
        """Get the first track with the given role, if any."""
        for track in self.tracks:
            if track.role == role:
                return track
        return None

    def total_beats(self) -> float:
        lead = self.track(TrackRole.LEAD)
        return lead.total_beats() if lead else 0.0


@dataclass
class AnalyzeResult:
    """Container for transcription results."""

    melody: List[MelodyStep]
    segments: List[Segment]
    suggested_key: str
    suggested_scale: str
    key: str  # key actually used for snapping and spelling
    scale: str
    warning: Optional[str] = None
    estimator_error: Optional[str] = None
    debug: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ContinuityStats:
    """Counters reported by the continuity engine."""

    rests_removed: int = 0
    rests_shortened: int = 0
    fills_inserted: int = 0


@dataclass
class ContinuityResult:
    arrangement: Arrangement
    stats: ContinuityStats
