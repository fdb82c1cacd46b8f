"""Compiled, exactly-timed scores.

A ``Composition`` is a set of ``Track`` objects, one per instrument voice, each
holding sounding ``Event`` objects plus silent rest placeholders.  The composer
builds it once from a fully rewritten music string; the scheduler then reads it
without ever changing the events.
"""

import dataclasses
import typing

import turtlesong.constants

from turtlesong.music_time import Beat, MusicTime, TimeSignature


Volume = int
Instrument = str


def volume_to_gain (volume: Volume) -> float:

	"""Map a volume in ``[0, MAX_VOLUME]`` to ``[0.0, 1.0]``."""

	return max(0, min(volume, turtlesong.constants.MAX_VOLUME)) / turtlesong.constants.MAX_VOLUME


@dataclasses.dataclass (frozen=True, order=True)
class Pitch:

	"""
	An octave plus an offset within the octave.

	Offsets come from the fixed note-letter table in ``turtlesong.constants``
	and may fall one step outside ``[0, 12)`` after an accidental (``ab`` is -1).
	"""

	octave: int
	offset: int

	def to_frequency (self) -> float:

		"""Frequency in Hz, with offset 9 of octave 4 tuned to 440 Hz."""

		return 440.0 * 2 ** (self.octave - 4 + (self.offset - 9) / 12)

	def to_midi_note (self) -> int:

		"""MIDI note number matching ``to_frequency`` (offset 9 of octave 4 is note 69)."""

		return 69 + (self.octave - 4) * 12 + (self.offset - 9)

	def name (self) -> str:

		"""
		Spell the pitch in the notation the scanner reads, e.g. ``4c#``.

		Every offset from -1 to 11 has a spelling: a natural letter, or a
		letter raised by ``#``, or ``ab`` for -1.
		"""

		for letter, offset in turtlesong.constants.NOTE_OFFSETS.items():
			if offset == self.offset:
				return f"{self.octave}{letter}"

		for letter, offset in turtlesong.constants.NOTE_OFFSETS.items():
			if offset + 1 == self.offset:
				return f"{self.octave}{letter}{turtlesong.constants.SHARP}"

		for letter, offset in turtlesong.constants.NOTE_OFFSETS.items():
			if offset - 1 == self.offset:
				return f"{self.octave}{letter}{turtlesong.constants.FLAT}"

		raise ValueError(f"Pitch offset {self.offset} has no spelling")


@dataclasses.dataclass (frozen=True, order=True)
class TrackId:

	"""
	Identifies a track: an instrument plus a voice path.

	Voice ``""`` is the main line.  Parallel split branches compose into voices
	such as ``"1"`` or ``"1.2"`` so that simultaneous material on one instrument
	keeps separate tracks.
	"""

	instrument: Instrument
	voice: str = ""

	def branch (self, index: int) -> "TrackId":

		"""Return the identifier used by split branch ``index`` of this voice."""

		if index == 0:
			return self

		voice = f"{self.voice}.{index}" if self.voice else str(index)

		return TrackId(self.instrument, voice)

	def __str__ (self) -> str:

		if not self.voice:
			return self.instrument

		return f"{self.instrument}#{self.voice}"


@dataclasses.dataclass (frozen=True, order=True)
class Event:

	"""
	One note (or rest placeholder) at an absolute position.
	"""

	start: MusicTime
	duration: Beat
	volume: Volume
	pitch: Pitch

	def get_end (self, time_signature: TimeSignature) -> MusicTime:

		return self.start.add(MusicTime.from_beats(self.duration, time_signature), time_signature)

	def shifted (self, offset: MusicTime, time_signature: TimeSignature) -> "Event":

		return dataclasses.replace(self, start=self.start.add(offset, time_signature))

	def sounds_at (self, time: MusicTime, time_signature: TimeSignature) -> bool:

		"""True when ``time`` lies in ``[start, end)``."""

		return self.start <= time < self.get_end(time_signature)


@dataclasses.dataclass
class Track:

	"""
	The events of one instrument voice.

	``rests`` never sound; they are kept so that visualisations can show where
	the line is deliberately silent.
	"""

	identifier: TrackId
	instrument: Instrument
	events: typing.List[Event] = dataclasses.field(default_factory=list)
	rests: typing.List[Event] = dataclasses.field(default_factory=list)

	def _all (self) -> typing.List[Event]:

		return self.events + self.rests

	def get_start (self) -> typing.Optional[MusicTime]:

		"""Earliest start of any event or rest, or ``None`` for an empty track."""

		items = self._all()

		if not items:
			return None

		return min(e.start for e in items)

	def get_end (self, time_signature: TimeSignature) -> typing.Optional[MusicTime]:

		"""Latest end of any event or rest, or ``None`` for an empty track."""

		items = self._all()

		if not items:
			return None

		return max(e.get_end(time_signature) for e in items)

	def get_duration (self, time_signature: TimeSignature) -> MusicTime:

		start = self.get_start()
		end = self.get_end(time_signature)

		if start is None or end is None:
			return MusicTime.zero()

		return end.subtract(start, time_signature)

	def get_events_starting_between (self, start: MusicTime, end: MusicTime, start_exclusive: bool) -> typing.List[Event]:

		"""
		Return sounding events whose start lies between ``start`` and ``end``.

		The end is always inclusive; the start is exclusive when
		``start_exclusive`` is set.  The result is sorted by start.
		"""

		if start > end or (start_exclusive and start == end):
			return []

		selected = [
			e for e in self.events
			if (start < e.start if start_exclusive else start <= e.start) and e.start <= end
		]

		return sorted(selected)

	def get_events_at (self, time: MusicTime, time_signature: TimeSignature) -> typing.List[Event]:

		"""Sounding events that are playing at ``time``."""

		return [e for e in self.events if e.sounds_at(time, time_signature)]

	def get_rests_at (self, time: MusicTime, time_signature: TimeSignature) -> typing.List[Event]:

		"""Rests that cover ``time``."""

		return [e for e in self.rests if e.sounds_at(time, time_signature)]

	def shifted (self, offset: MusicTime, time_signature: TimeSignature) -> "Track":

		"""Return a copy of this track moved later by ``offset``."""

		return Track(
			identifier = self.identifier,
			instrument = self.instrument,
			events = [e.shifted(offset, time_signature) for e in self.events],
			rests = [e.shifted(offset, time_signature) for e in self.rests]
		)

	def merge (self, other: "Track") -> "Track":

		"""
		Concatenate two tracks of the same identifier and re-sort by start.

		Raises:
			ValueError: If the tracks belong to different instruments or voices.
		"""

		if self.identifier != other.identifier:
			raise ValueError(f"Cannot merge track {self.identifier} with track {other.identifier}")

		return Track(
			identifier = self.identifier,
			instrument = self.instrument,
			events = sorted(self.events + other.events),
			rests = sorted(self.rests + other.rests)
		)


@dataclasses.dataclass
class Composition:

	"""
	Per-track events for a whole piece, under one time signature.
	"""

	tracks: typing.List[Track]
	time_signature: TimeSignature

	def get_track (self, identifier: TrackId) -> typing.Optional[Track]:

		for track in self.tracks:
			if track.identifier == identifier:
				return track

		return None

	def get_end (self) -> MusicTime:

		"""Latest end over every track, or zero for an empty composition."""

		ends = [end for end in (t.get_end(self.time_signature) for t in self.tracks) if end is not None]

		return max(ends) if ends else MusicTime.zero()

	def get_duration (self) -> MusicTime:

		"""Span from the earliest start to the latest end."""

		starts = [start for start in (t.get_start() for t in self.tracks) if start is not None]

		if not starts:
			return MusicTime.zero()

		return self.get_end().subtract(min(starts), self.time_signature)

	def shifted (self, offset: MusicTime) -> "Composition":

		return Composition(
			tracks = [t.shifted(offset, self.time_signature) for t in self.tracks],
			time_signature = self.time_signature
		)

	def merge (self, other: "Composition") -> "Composition":

		"""
		Combine two compositions, concatenating tracks that share an identifier.

		Raises:
			ValueError: If the time signatures differ.
		"""

		if self.time_signature != other.time_signature:
			raise ValueError(f"Cannot merge compositions in {self.time_signature} and {other.time_signature}")

		merged: typing.Dict[TrackId, Track] = {}

		for track in self.tracks + other.tracks:
			if track.identifier in merged:
				merged[track.identifier] = merged[track.identifier].merge(track)
			else:
				merged[track.identifier] = track

		return Composition(tracks=list(merged.values()), time_signature=self.time_signature)

	def event_count (self) -> int:

		return sum(len(t.events) for t in self.tracks)
