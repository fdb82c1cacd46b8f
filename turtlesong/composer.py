"""Turn a rewritten music string into an exactly timed ``Composition``.

The composer is a turtle: it walks the primitives left to right carrying a
cursor, the current instrument, the current volume and a voice path.  Notes and
rests append an event at the cursor and move it forward; meta-controls change
the instrument or volume without moving it.

Splits and repeats compose their contents as sub-pieces from the surrounding
context.  Instrument or volume changes made inside one never leak out to the
primitives that follow it.
"""

import dataclasses
import logging
import typing

import turtlesong.constants

from turtlesong.composition import Composition, Event, Instrument, Pitch, Track, TrackId, Volume
from turtlesong.grammar import ChangeInstrument, ChangeVolume, MusicString, NonTerminal, Note, Repeat, Rest, Simple, Split
from turtlesong.music_time import Beat, MusicTime, TimeSignature


logger = logging.getLogger(__name__)

REST_PITCH = Pitch(0, 0)


class ComposeError (Exception):

	"""Base class for errors raised while composing."""


class MismatchedLengthsError (ComposeError):

	"""The branches of a split do not all last the same time."""

	def __init__ (self, durations: typing.List[Beat]) -> None:

		listed = ", ".join(str(d) for d in durations)
		super().__init__(f"Not all split branches have the same duration: {listed}")
		self.durations = durations


@dataclasses.dataclass
class _Turtle:

	"""Interpreter state threaded through one music string."""

	instrument: Instrument
	volume: Volume
	voice: str
	cursor: Beat = Beat(0)

	def track_id (self) -> TrackId:

		return TrackId(self.instrument, self.voice)


class _Tracks:

	"""Tracks keyed by identifier, built once per compose call."""

	def __init__ (self) -> None:

		self._tracks: typing.Dict[TrackId, Track] = {}

	def _get (self, identifier: TrackId) -> Track:

		if identifier not in self._tracks:
			self._tracks[identifier] = Track(identifier=identifier, instrument=identifier.instrument)

		return self._tracks[identifier]

	def add_event (self, identifier: TrackId, event: Event) -> None:

		self._get(identifier).events.append(event)

	def add_rest (self, identifier: TrackId, event: Event) -> None:

		self._get(identifier).rests.append(event)

	def add_composition (self, composition: Composition) -> None:

		"""Fold a composed sub-piece in, concatenating tracks that already exist."""

		for track in composition.tracks:
			if track.identifier in self._tracks:
				self._tracks[track.identifier] = self._tracks[track.identifier].merge(track)
			else:
				self._tracks[track.identifier] = track

	def to_composition (self, time_signature: TimeSignature) -> Composition:

		tracks = [
			Track(t.identifier, t.instrument, sorted(t.events), sorted(t.rests))
			for t in self._tracks.values()
		]

		return Composition(tracks=tracks, time_signature=time_signature)


def compose (
	music_string: MusicString,
	time_signature: TimeSignature,
	starting_instrument: typing.Optional[Instrument] = None,
	starting_volume: typing.Optional[Volume] = None
) -> Composition:

	"""
	Compose a music string into per-track events.

	The string is expected to be fully rewritten.  Any non-terminal that is
	left takes no time and is reported with a warning.

	Parameters:
		music_string: The terminal string to compose.
		time_signature: Signature used to place events in measures.
		starting_instrument: Instrument before the first ``::i=`` control
			(default ``"sine"``).
		starting_volume: Volume before the first ``::v=`` control (default 50).

	Raises:
		MismatchedLengthsError: If any split's branches differ in duration.
			The first such split aborts the whole call.

	Example:
		```python
		composition = compose(parse_music_string(":c<1> :d<1>"), TimeSignature.common())
		```
	"""

	turtle = _Turtle(
		instrument = starting_instrument if starting_instrument is not None else turtlesong.constants.DEFAULT_INSTRUMENT,
		volume = starting_volume if starting_volume is not None else turtlesong.constants.DEFAULT_VOLUME,
		voice = ""
	)

	tracks = _Tracks()
	_compose_into(music_string, time_signature, turtle, tracks)

	composition = tracks.to_composition(time_signature)

	logger.debug(f"Composed {composition.event_count()} events in {len(composition.tracks)} tracks")

	return composition


def _compose_into (music_string: MusicString, time_signature: TimeSignature, turtle: _Turtle, tracks: _Tracks) -> Beat:

	"""Walk ``music_string`` from ``turtle.cursor``, returning how many beats it took."""

	begin = turtle.cursor

	for primitive in music_string:

		if isinstance(primitive, Simple):
			_compose_symbol(primitive.symbol, time_signature, turtle, tracks)

		elif isinstance(primitive, Split):
			turtle.cursor += _compose_split(primitive, time_signature, turtle, tracks)

		elif isinstance(primitive, Repeat):
			turtle.cursor += _compose_repeat(primitive, time_signature, turtle, tracks)

		else:
			raise TypeError(f"Unknown music primitive {primitive!r}")

	return turtle.cursor - begin


def _compose_symbol (symbol: typing.Any, time_signature: TimeSignature, turtle: _Turtle, tracks: _Tracks) -> None:

	if isinstance(symbol, Note):
		start = MusicTime.from_beats(turtle.cursor, time_signature)
		tracks.add_event(turtle.track_id(), Event(start, symbol.duration, turtle.volume, symbol.pitch))
		turtle.cursor += symbol.duration

	elif isinstance(symbol, Rest):
		start = MusicTime.from_beats(turtle.cursor, time_signature)
		tracks.add_rest(turtle.track_id(), Event(start, symbol.duration, 0, REST_PITCH))
		turtle.cursor += symbol.duration

	elif isinstance(symbol, ChangeInstrument):
		turtle.instrument = symbol.instrument

	elif isinstance(symbol, ChangeVolume):
		turtle.volume = symbol.volume

	elif isinstance(symbol, NonTerminal):
		logger.warning(f"Non-terminal {symbol.name!r} left in composed string; it takes no time")

	else:
		raise TypeError(f"Unknown symbol {symbol!r}")


def _compose_split (split: Split, time_signature: TimeSignature, turtle: _Turtle, tracks: _Tracks) -> Beat:

	"""
	Compose every branch from the same cursor and context.

	Branch 0 stays in the current voice; branch ``k`` moves to voice ``k`` under
	it, so parallel lines on one instrument never share a track.
	"""

	durations: typing.List[Beat] = []
	combined = Composition(tracks=[], time_signature=time_signature)

	for index, branch in enumerate(split.branches):

		branch_turtle = dataclasses.replace(turtle, voice=turtle.track_id().branch(index).voice)
		composed = _Tracks()

		durations.append(_compose_into(branch, time_signature, branch_turtle, composed))
		combined = combined.merge(composed.to_composition(time_signature))

	if any(d != durations[0] for d in durations):
		raise MismatchedLengthsError(durations)

	tracks.add_composition(combined)

	return durations[0] if durations else Beat(0)


def _compose_repeat (repeat: Repeat, time_signature: TimeSignature, turtle: _Turtle, tracks: _Tracks) -> Beat:

	"""Compose the content once at the cursor, then lay down shifted copies."""

	content_turtle = dataclasses.replace(turtle)
	composed = _Tracks()

	duration = _compose_into(repeat.content, time_signature, content_turtle, composed)
	once = composed.to_composition(time_signature)
	repeated = Composition(tracks=[], time_signature=time_signature)

	for i in range(repeat.num):
		repeated = repeated.merge(once.shifted(MusicTime.from_beats(duration * i, time_signature)))

	tracks.add_composition(repeated)

	return duration * repeat.num
