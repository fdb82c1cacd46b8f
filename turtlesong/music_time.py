"""Exact musical time.

Positions and durations are held as ``MusicTime(measure, beat)`` where
``beat`` is an exact ``fractions.Fraction``.  How many beats fit in a measure
depends on the time signature, so every arithmetic operation takes the
``TimeSignature`` explicitly and returns a value whose beat lies in
``[0, beats_per_measure)``.

```python
sig = TimeSignature.common()
t = MusicTime(0, Beat(7, 2)).add(MusicTime.beats(1), sig)	# 1m+1/2
t.to_seconds(sig, bpm=120)									# 2.25
```
"""

import dataclasses
import fractions
import math
import typing

import turtlesong.constants


Beat = fractions.Fraction

BeatLike = typing.Union[int, fractions.Fraction]


class MusicTimeError (ValueError):

	"""Raised when an operation would produce a negative musical time."""


@dataclasses.dataclass (frozen=True)
class TimeSignature:

	"""
	A time signature: how many beats a measure holds, and which note value is one beat.
	"""

	beats_per_measure: int
	beat_unit: int

	def __post_init__ (self) -> None:

		if self.beats_per_measure <= 0 or self.beat_unit <= 0:
			raise ValueError(f"Invalid time signature {self.beats_per_measure}/{self.beat_unit}")

	@classmethod
	def common (cls) -> "TimeSignature":

		"""Return 4/4."""

		return cls(4, 4)

	def __str__ (self) -> str:

		return f"{self.beats_per_measure}/{self.beat_unit}"


def _check_bpm (bpm: float) -> None:

	if bpm <= 0:
		raise ValueError("BPM must be positive")


@dataclasses.dataclass (frozen=True, order=True)
class MusicTime:

	"""
	A position or duration expressed as whole measures plus a beat remainder.

	Ordering compares ``(measure, beat)`` lexicographically, which matches
	chronological order for values normalised to the same time signature.
	"""

	measure: int
	beat: Beat = Beat(0)

	def __post_init__ (self) -> None:

		if self.measure < 0:
			raise MusicTimeError(f"Measure cannot be negative (got {self.measure})")

		if self.beat < 0:
			raise MusicTimeError(f"Beat cannot be negative (got {self.beat})")

		if not isinstance(self.beat, fractions.Fraction):
			object.__setattr__(self, "beat", Beat(self.beat))

	# ------------------------------------------------------------------
	# Constructors
	# ------------------------------------------------------------------

	@classmethod
	def zero (cls) -> "MusicTime":

		return cls(0, Beat(0))

	@classmethod
	def beats (cls, beats: BeatLike) -> "MusicTime":

		"""A raw beat count, not yet normalised to any signature."""

		return cls(0, Beat(beats))

	@classmethod
	def measures (cls, measures: int) -> "MusicTime":

		return cls(measures, Beat(0))

	@classmethod
	def from_beats (cls, beats: BeatLike, time_signature: TimeSignature) -> "MusicTime":

		"""
		Normalise a raw beat count into measures and a remainder.

		Uses floor division by ``beats_per_measure`` so the remainder always
		lies in ``[0, beats_per_measure)``.

		Raises:
			MusicTimeError: If ``beats`` is negative.
		"""

		beats = Beat(beats)

		if beats < 0:
			raise MusicTimeError(f"Cannot place a negative beat count ({beats}) in time")

		measures, remainder = divmod(beats, time_signature.beats_per_measure)

		return cls(int(measures), Beat(remainder))

	@classmethod
	def from_seconds (cls, seconds: float, time_signature: TimeSignature, bpm: float) -> "MusicTime":

		"""
		Convert elapsed seconds to a musical position.

		The floating beat count is rationalised at a fixed precision of
		``1 / SECONDS_RATIONAL_PRECISION`` beats (rounded down) so that repeated
		conversions never build up unbounded denominators.
		"""

		_check_bpm(bpm)

		if seconds < 0:
			raise MusicTimeError(f"Cannot convert negative seconds ({seconds}) to music time")

		precision = turtlesong.constants.SECONDS_RATIONAL_PRECISION
		beats = seconds * bpm / 60.0
		numerator = math.floor(beats * precision)

		return cls.from_beats(Beat(numerator, precision), time_signature)

	# ------------------------------------------------------------------
	# Arithmetic
	# ------------------------------------------------------------------

	def total_beats (self, time_signature: TimeSignature) -> Beat:

		"""Return this time as a single beat count."""

		return self.measure * time_signature.beats_per_measure + self.beat

	def normalized (self, time_signature: TimeSignature) -> "MusicTime":

		"""Carry any excess beats into measures."""

		extra = MusicTime.from_beats(self.beat, time_signature)

		return MusicTime(self.measure + extra.measure, extra.beat)

	def add (self, other: "MusicTime", time_signature: TimeSignature) -> "MusicTime":

		"""Add two times, carrying whole measures out of the beat sum."""

		carried = MusicTime.from_beats(self.beat + other.beat, time_signature)

		return MusicTime(self.measure + other.measure + carried.measure, carried.beat)

	def subtract (self, other: "MusicTime", time_signature: TimeSignature) -> "MusicTime":

		"""
		Subtract ``other`` from this time.

		When the subtrahend has more beats, one measure is borrowed first.  The
		remainder is normalised afterwards because a fractional or
		un-normalised operand can still exceed one measure after a single borrow.

		Raises:
			MusicTimeError: If the result would fall before measure 0.
		"""

		measure = self.measure - other.measure
		beat = self.beat

		if other.beat > beat:
			beat += time_signature.beats_per_measure
			measure -= 1

		beat -= other.beat

		# An un-normalised subtrahend may still leave a negative remainder.
		while beat < 0:
			beat += time_signature.beats_per_measure
			measure -= 1

		carried = MusicTime.from_beats(beat, time_signature)
		measure += carried.measure

		if measure < 0:
			raise MusicTimeError(f"{self} - {other} falls before the first measure")

		return MusicTime(measure, carried.beat)

	def scale (self, factor: BeatLike, time_signature: TimeSignature) -> "MusicTime":

		"""Multiply this time by a non-negative integer or fraction."""

		if factor < 0:
			raise MusicTimeError(f"Cannot scale a time by a negative factor ({factor})")

		return MusicTime.from_beats(self.total_beats(time_signature) * Beat(factor), time_signature)

	# ------------------------------------------------------------------
	# Wall-clock conversion
	# ------------------------------------------------------------------

	def to_seconds (self, time_signature: TimeSignature, bpm: float) -> float:

		"""Return the number of seconds this time lasts at ``bpm``."""

		_check_bpm(bpm)

		return float(self.total_beats(time_signature)) * 60.0 / bpm

	def __str__ (self) -> str:

		if self.beat.denominator == 1:
			beat_text = str(self.beat.numerator)
		else:
			beat_text = f"{self.beat.numerator}/{self.beat.denominator}"

		if self.measure == 0:
			return beat_text

		return f"{self.measure}m+{beat_text}"


def beats_to_seconds (beats: BeatLike, bpm: float) -> float:

	"""Convert a beat count to seconds at ``bpm``."""

	_check_bpm(bpm)

	return float(beats) * 60.0 / bpm
