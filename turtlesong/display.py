"""Fixed-width ASCII rendering of composed tracks, for debugging.

Each track becomes one row of cells, one cell per equal slice of the piece::

	sine            |O-o-O-o-____O---|
	sine#1          |o o o o o o o o |

A cell shows the loudest note that starts inside its slice, by velocity
(``X`` loud, ``O`` medium, ``o`` soft, ``.`` very soft), ``-`` while a note
started earlier is still sounding, ``_`` during a rest and a space for silence.
"""

import typing

import turtlesong.midi_sink

from turtlesong.composition import Composition, Track
from turtlesong.music_time import Beat, MusicTime, TimeSignature


_LABEL_WIDTH = 16


def _velocity_char (velocity: int) -> str:

	if velocity <= 40:
		return "."
	if velocity <= 80:
		return "o"
	if velocity <= 110:
		return "O"
	return "X"


def render_track (track: Track, columns: int, length: MusicTime, time_signature: TimeSignature) -> str:

	"""
	Render one track as ``columns`` characters spanning ``length`` from time zero.

	Raises:
		ValueError: If ``columns`` is not positive.
	"""

	if columns <= 0:
		raise ValueError("Column count must be positive")

	total = length.total_beats(time_signature)
	step = Beat(total) / columns
	cells: typing.List[str] = []

	for column in range(columns):

		begin = MusicTime.from_beats(step * column, time_signature)
		end = MusicTime.from_beats(step * (column + 1), time_signature)

		starting = [e for e in track.events if begin <= e.start < end]

		if starting:
			loudest = max(turtlesong.midi_sink.volume_to_velocity(e.volume) for e in starting)
			cells.append(_velocity_char(loudest))
		elif track.get_events_at(begin, time_signature):
			cells.append("-")
		elif track.get_rests_at(begin, time_signature):
			cells.append("_")
		else:
			cells.append(" ")

	return "".join(cells)


def render_composition (composition: Composition, columns: int) -> str:

	"""Render every track, labelled and sorted by identifier, one per line."""

	length = composition.get_end()
	lines = []

	for track in sorted(composition.tracks, key=lambda t: t.identifier):

		label = str(track.identifier)[:_LABEL_WIDTH].ljust(_LABEL_WIDTH)
		cells = render_track(track, columns, length, composition.time_signature)
		lines.append(f"{label}|{cells}|")

	return "\n".join(lines)
