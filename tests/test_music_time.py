import pytest

import turtlesong.music_time

from turtlesong.music_time import Beat, MusicTime, MusicTimeError, TimeSignature


COMMON = TimeSignature.common()
WALTZ = TimeSignature(3, 4)


def test_from_beats_normalises_into_measures () -> None:

	"""Beats beyond one measure carry into the measure count."""

	assert MusicTime.from_beats(Beat(9, 2), COMMON) == MusicTime(1, Beat(1, 2))
	assert MusicTime.from_beats(7, WALTZ) == MusicTime(2, Beat(1))
	assert MusicTime.from_beats(0, COMMON) == MusicTime.zero()


def test_from_beats_rejects_negative () -> None:

	"""A negative beat count has no place in time."""

	with pytest.raises(MusicTimeError):
		MusicTime.from_beats(-1, COMMON)


def test_construction_rejects_negative_parts () -> None:

	"""Neither measure nor beat may be negative."""

	with pytest.raises(MusicTimeError):
		MusicTime(-1, Beat(0))

	with pytest.raises(MusicTimeError):
		MusicTime(0, Beat(-1, 2))


def test_add_carries_measure () -> None:

	"""Adding past the end of a measure carries into the next one."""

	result = MusicTime(0, Beat(7, 2)).add(MusicTime.beats(1), COMMON)

	assert result == MusicTime(1, Beat(1, 2))


def test_subtract_borrows () -> None:

	"""Subtracting more beats than are present borrows a measure."""

	result = MusicTime(2, Beat(1, 4)).subtract(MusicTime(0, Beat(3, 4)), COMMON)

	assert result == MusicTime(1, Beat(7, 2))


def test_subtract_below_zero_raises () -> None:

	"""Going before the first measure is an error, not a wrap."""

	with pytest.raises(MusicTimeError):
		MusicTime.beats(1).subtract(MusicTime.beats(2), COMMON)


def test_subtract_unnormalised_operand () -> None:

	"""A raw beat count larger than one measure still subtracts correctly."""

	result = MusicTime(3, Beat(0)).subtract(MusicTime.beats(9), COMMON)

	assert result == MusicTime(0, Beat(3))


def test_add_then_subtract_is_identity () -> None:

	"""Subtracting what was added gets back to the start."""

	start = MusicTime(1, Beat(5, 3))
	step = MusicTime(2, Beat(11, 4))

	assert start.add(step, COMMON).subtract(step, COMMON) == start.normalized(COMMON)


def test_scale () -> None:

	"""Scaling multiplies the total beat count."""

	assert MusicTime.beats(3).scale(3, COMMON) == MusicTime(2, Beat(1))
	assert MusicTime(1, Beat(0)).scale(Beat(1, 2), COMMON) == MusicTime.beats(2)


def test_seconds_round_trip () -> None:

	"""Conversions to and from seconds agree at a given tempo."""

	t = MusicTime(1, Beat(1, 2))

	assert t.to_seconds(COMMON, bpm=120) == pytest.approx(2.25)
	assert MusicTime.from_seconds(2.25, COMMON, bpm=120) == t


def test_from_seconds_bounded_denominator () -> None:

	"""Floating seconds are rationalised at a fixed precision."""

	t = MusicTime.from_seconds(1 / 3, COMMON, bpm=60)

	assert t.beat.denominator <= 1_000_000
	assert t.beat <= Beat(1, 3)


def test_invalid_bpm () -> None:

	"""A tempo must be positive."""

	with pytest.raises(ValueError):
		MusicTime.beats(1).to_seconds(COMMON, bpm=0)

	with pytest.raises(ValueError):
		turtlesong.music_time.beats_to_seconds(1, -10)


def test_ordering_is_chronological () -> None:

	"""Normalised times sort by measure then beat."""

	times = [MusicTime(1, Beat(0)), MusicTime(0, Beat(3)), MusicTime(0, Beat(1, 2))]

	assert sorted(times) == [MusicTime(0, Beat(1, 2)), MusicTime(0, Beat(3)), MusicTime(1, Beat(0))]


def test_str () -> None:

	"""Times print compactly."""

	assert str(MusicTime.beats(3)) == "3"
	assert str(MusicTime.beats(Beat(1, 2))) == "1/2"
	assert str(MusicTime(2, Beat(1, 2))) == "2m+1/2"
	assert str(WALTZ) == "3/4"


def test_invalid_time_signature () -> None:

	"""Time signatures need positive parts."""

	with pytest.raises(ValueError):
		TimeSignature(0, 4)
