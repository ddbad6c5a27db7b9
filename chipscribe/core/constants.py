"""Global constants for chipscribe."""

# Pitch names
NOTE_NAMES_SHARP = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

# Key display names (mixed sharp/flat spelling)
KEY_NAMES = ["C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B"]
FLAT_KEYS = ("F", "Bb", "Eb", "Ab", "Db", "Gb")

MAJOR_INTERVALS = [0, 2, 4, 5, 7, 9, 11]
MINOR_INTERVALS = [0, 2, 3, 5, 7, 8, 10]

REST = "REST"

# Frame analysis
FRAME_SIZE = 2048
HOP_SIZE = 512

# Musical defaults
DEFAULT_BPM = 120.0
DEFAULT_KEY = "C"
DEFAULT_SCALE = "major"
MIN_BPM = 60.0
MAX_BPM = 200.0

# Tempo autocorrelation prior, a mild preference for tempos near the center.
# A weight of 0 picks the lag with the highest self-similarity.
TEMPO_PRIOR_CENTER_BPM = 120.0
TEMPO_PRIOR_WIDTH_OCTAVES = 0.5
TEMPO_PRIOR_WEIGHT = 0.2

GRID_BASE_BEATS = {"quarter": 1.0, "eighth": 0.5, "sixteenth": 0.25}
ANALYSIS_MODES = ("monophonic", "full_mix")
SCALES = ("major", "minor")

# MIDI ranges
MIDI_MIN = 0
MIDI_MAX = 127

# Voicing. Full-mix confidence runs lower than autocorrelation clarity.
FULL_MIX_RMS_FACTOR = 0.15
FULL_MIX_CLARITY_FACTOR = 0.25
ADAPTIVE_TRIGGER_MONO = 0.20
ADAPTIVE_TRIGGER_FULL_MIX = 0.22
GAP_FILL_FRAMES_MONO = 2
GAP_FILL_SECONDS_FULL_MIX = 0.22
GAP_FILL_JUMP_MONO = 2.0
GAP_FILL_JUMP_FULL_MIX = 2.5

# Warnings
LOW_VOICED_RATIO_MONO = 0.20
LOW_VOICED_RATIO_FULL_MIX = 0.12
HIGH_VOICED_RATIO = 0.95

# Scale snapping (tunable, empirically chosen)
SNAP_SEARCH_SEMITONES = 3
JUMP_GUARD_SNAPPED = 12
JUMP_GUARD_RAW = 7
FULL_MIX_MAX_JUMP = 7
FULL_MIX_SNAP_VETO_FACTOR = 1.5

# Segment cleanup
DEGLITCH_NEIGHBOR_TOLERANCE = 2
DEGLITCH_MIN_DEVIATION = 4

# Continuity
DEFAULT_INTENSITY = 60.0
