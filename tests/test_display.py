import pytest

import turtlesong.composer
import turtlesong.display
import turtlesong.scan

from turtlesong.music_time import MusicTime, TimeSignature


COMMON = TimeSignature.common()


def _compose (text: str):

	return turtlesong.composer.compose(turtlesong.scan.parse_music_string(text), COMMON)


def test_render_track_cells () -> None:

	"""Note starts, sustains, rests and silence each have their own character."""

	track = _compose(":c<2> :_ :d").tracks[0]

	assert turtlesong.display.render_track(track, 8, MusicTime.measures(1), COMMON) == "o---__o-"


def test_velocity_characters () -> None:

	"""Louder notes show heavier characters."""

	track = _compose("::v=10 :c ::v=50 :c ::v=80 :c ::v=100 :c").tracks[0]

	assert turtlesong.display.render_track(track, 4, MusicTime.beats(4), COMMON) == ".oOX"


def test_silence_after_end () -> None:

	"""Columns past the last event are blank."""

	track = _compose(":c").tracks[0]

	assert turtlesong.display.render_track(track, 4, MusicTime.beats(4), COMMON) == "o   "


def test_render_composition_labels_tracks () -> None:

	"""Each track gets a labelled row, in identifier order."""

	text = turtlesong.display.render_composition(_compose("{:c :d | ::i=bass :e<2>}"), columns=4)
	lines = text.splitlines()

	assert len(lines) == 2
	assert lines[0].startswith("bass")
	assert lines[0].endswith("|o---|")
	assert lines[1].startswith("sine")
	assert lines[1].endswith("|o-o-|")


def test_render_track_needs_columns () -> None:

	"""Zero columns is refused."""

	track = _compose(":c").tracks[0]

	with pytest.raises(ValueError):
		turtlesong.display.render_track(track, 0, MusicTime.beats(1), COMMON)
