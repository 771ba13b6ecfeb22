"""Global constants for chordscope."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
PITCH_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

# Scale intervals from the tonic
MAJOR_SCALE = (0, 2, 4, 5, 7, 9, 11)
MINOR_SCALE = (0, 2, 3, 5, 7, 8, 10)  # Natural minor

# Audio processing defaults
DEFAULT_SR = 22050
DEFAULT_FRAME_SIZE = 4096
DEFAULT_HOP_SECONDS = 0.10

# Musical defaults
DEFAULT_TEMPO = 120
MIN_TEMPO = 60
MAX_TEMPO = 200
