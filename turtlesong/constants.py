"""Defaults and fixed tables used by the scanner and composer.

Note letters do not follow chromatic order: each letter maps to a fixed
offset within the octave, and ``#`` / ``b`` shift that offset by one.
"""

DEFAULT_OCTAVE = 4
DEFAULT_DURATION_BEATS = 1

NOTE_OFFSETS = {
	"a": 0,
	"b": 2,
	"c": 3,
	"d": 5,
	"e": 7,
	"f": 8,
	"g": 10,
}

SHARP = "#"
FLAT = "b"

MAX_VOLUME = 100
DEFAULT_VOLUME = 50

DEFAULT_INSTRUMENT = "sine"

# Precision used when turning floating seconds back into exact beats.
SECONDS_RATIONAL_PRECISION = 1_000_000
