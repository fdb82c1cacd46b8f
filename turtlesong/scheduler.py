"""Lookahead scheduling of a composition against wall-clock time.

The caller polls with the number of seconds since playback began.  Each poll
returns the events that start inside the lookahead window and have not been
returned before, converted to absolute seconds.  Polling more often than the
lookahead keeps the window ahead of the clock, so an output can be told about
each note before it is due.

Every track keeps its own cursor: the loop-relative position up to which its
events have been delivered, plus the number of completed loop passes.  The
first window is inclusive at its start so that an event at beat 0 is delivered;
every later window is exclusive at the cursor and inclusive at its end, which
is what stops a boundary event being delivered twice.

When looping, a cursor is placed at the poll position the first time it is
polled, and again whenever a poll finds it behind the clock.  Events that
were missed are skipped rather than sent late, and any record that would still
start before the poll moves on by whole loop passes.
"""

import dataclasses
import logging
import typing

from turtlesong.composition import Composition, Event, Instrument, Track, Volume, volume_to_gain
from turtlesong.music_time import Beat, MusicTime, TimeSignature, beats_to_seconds


logger = logging.getLogger(__name__)


@dataclasses.dataclass (frozen=True)
class ScheduledSound:

	"""
	One note ready for an output, in absolute seconds from the start of playback.
	"""

	start: float
	duration: float
	volume: Volume
	instrument: Instrument
	frequency: float

	def get_end (self) -> float:

		return self.start + self.duration

	def gain (self) -> float:

		return volume_to_gain(self.volume)


@dataclasses.dataclass
class _Cursor:

	track: Track
	position: MusicTime
	lap: int = 0
	primed: bool = False


class Scheduler:

	"""
	Selects the events of a composition that fall due in each polling window.

	Example:
		```python
		scheduler = Scheduler(bpm=120, time_signature=sig, lookahead=MusicTime.beats(1), looped=True)
		scheduler.set_composition(composition)

		for sound in scheduler.poll(elapsed_seconds):
			sink.play(sound)
		```
	"""

	def __init__ (
		self,
		bpm: float,
		time_signature: TimeSignature,
		lookahead: MusicTime,
		looped: bool = False,
		loop_time: typing.Optional[MusicTime] = None
	) -> None:

		"""
		Parameters:
			bpm: Tempo used to convert between beats and seconds.
			time_signature: Signature of the compositions this scheduler plays.
			lookahead: How far past the clock each poll looks.
			looped: Restart from the beginning after ``loop_time``.
			loop_time: Loop length.  When ``None`` a looped scheduler uses the
				duration of each composition it is given.
		"""

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		if loop_time is not None and loop_time.total_beats(time_signature) <= 0:
			raise ValueError("Loop time must be longer than zero")

		self.bpm = bpm
		self.time_signature = time_signature
		self.lookahead = lookahead.normalized(time_signature)
		self.looped = looped

		self._requested_loop_time = loop_time.normalized(time_signature) if loop_time is not None else None
		self.loop_time: typing.Optional[MusicTime] = self._requested_loop_time

		self.composition: typing.Optional[Composition] = None
		self._cursors: typing.List[_Cursor] = []

	def set_composition (self, composition: Composition) -> None:

		"""
		Install a composition and rewind every track to the beginning.

		Raises:
			ValueError: If the composition uses a different time signature, if a
				looped composition is longer than the loop, or if the loop would
				be empty.
		"""

		if composition.time_signature != self.time_signature:
			raise ValueError(f"Composition is in {composition.time_signature} but the scheduler is in {self.time_signature}")

		if self.looped:

			duration = composition.get_duration()

			if self._requested_loop_time is None:
				self.loop_time = duration

			elif duration > self._requested_loop_time:
				raise ValueError(f"Composition lasts {duration} which is longer than the loop ({self._requested_loop_time})")

			elif duration < self._requested_loop_time:
				logger.warning(f"Composition lasts {duration}, shorter than the loop ({self._requested_loop_time}); the rest of each pass is silent")

			if self.loop_time is None or self.loop_time.total_beats(self.time_signature) <= 0:
				raise ValueError("Cannot loop a composition with no duration")

		self.composition = composition
		self._cursors = [_Cursor(track=track, position=MusicTime.zero()) for track in composition.tracks]

		logger.info(f"Scheduling {len(self._cursors)} tracks at {self.bpm} BPM" + (f", looping every {self.loop_time}" if self.looped else ""))

	def loop_seconds (self) -> typing.Optional[float]:

		"""Length of one loop pass in seconds, or ``None`` when not looping."""

		if not self.looped or self.loop_time is None:
			return None

		return self.loop_time.to_seconds(self.time_signature, self.bpm)

	# ------------------------------------------------------------------
	# Polling
	# ------------------------------------------------------------------

	def poll (self, elapsed_seconds: float) -> typing.List[ScheduledSound]:

		"""
		Return the sounds that start inside the window beginning at ``elapsed_seconds``.

		The result is sorted by start time.  A sound that was already returned
		by an earlier poll is never returned again, and a looping scheduler never
		returns a sound that starts before ``elapsed_seconds``: the first poll
		after ``set_composition`` starts from the current point in the loop, and
		a poll that arrives after the previous window has passed skips the
		events it missed.

		Raises:
			ValueError: If no composition has been set or ``elapsed_seconds`` is
				negative.
		"""

		if self.composition is None:
			raise ValueError("No composition set")

		current = MusicTime.from_seconds(elapsed_seconds, self.time_signature, self.bpm)
		lap = 0

		if self.looped:
			while current >= self.loop_time:
				current = current.subtract(self.loop_time, self.time_signature)
				lap += 1

		end_lap, end_position = lap, current.add(self.lookahead, self.time_signature)

		# A window ending exactly on the loop end belongs to the start of the next pass.
		if self.looped:
			while end_position >= self.loop_time:
				end_position = end_position.subtract(self.loop_time, self.time_signature)
				end_lap += 1

		sounds: typing.List[ScheduledSound] = []

		for cursor in self._cursors:

			if self.looped:
				self._seat(cursor, lap, current)

			for event_lap, event in self._advance(cursor, end_lap, end_position):
				sounds.append(self._to_sound(cursor.track, event_lap, event, lap, current))

		sounds.sort(key=lambda sound: sound.start)

		if sounds:
			logger.debug(f"Poll at {elapsed_seconds:.3f}s (pass {lap}, {current}) returned {len(sounds)} sounds")

		return sounds

	def _seat (self, cursor: _Cursor, lap: int, current: MusicTime) -> None:

		"""Move a looping cursor that is unplaced or behind the clock up to the poll position."""

		if cursor.primed and (cursor.lap, cursor.position) >= (lap, current):
			return

		if cursor.primed:
			logger.warning(f"Polling fell behind on {cursor.track.identifier}; skipping from pass {cursor.lap}, {cursor.position} to pass {lap}, {current}")

		cursor.lap = lap
		cursor.position = current
		cursor.primed = False

	def _advance (self, cursor: _Cursor, end_lap: int, end_position: MusicTime) -> typing.List[typing.Tuple[int, Event]]:

		"""Select this track's events between its cursor and the window end, then move the cursor there."""

		if cursor.primed and (end_lap, end_position) <= (cursor.lap, cursor.position):
			return []

		track = cursor.track
		exclusive = cursor.primed
		selected: typing.List[typing.Tuple[int, Event]] = []

		if end_lap == cursor.lap:
			selected.extend((cursor.lap, e) for e in track.get_events_starting_between(cursor.position, end_position, exclusive))

		else:
			selected.extend((cursor.lap, e) for e in track.get_events_starting_between(cursor.position, self.loop_time, exclusive))

			# The lookahead is longer than a whole pass.
			for whole_lap in range(cursor.lap + 1, end_lap):
				selected.extend((whole_lap, e) for e in track.get_events_starting_between(MusicTime.zero(), self.loop_time, False))

			selected.extend((end_lap, e) for e in track.get_events_starting_between(MusicTime.zero(), end_position, False))

		cursor.lap = end_lap
		cursor.position = end_position
		cursor.primed = True

		return selected

	def _to_sound (self, track: Track, lap: int, event: Event, poll_lap: int, poll_position: MusicTime) -> ScheduledSound:

		"""Convert an event to absolute seconds, moving a looped event that would start before the poll into the next pass."""

		start_beats = event.start.total_beats(self.time_signature)

		if self.looped:

			loop_beats = self.loop_time.total_beats(self.time_signature)
			poll_beats = poll_lap * loop_beats + poll_position.total_beats(self.time_signature)
			start_beats += lap * loop_beats

			while start_beats < poll_beats:
				start_beats += loop_beats

		return ScheduledSound(
			start = beats_to_seconds(start_beats, self.bpm),
			duration = beats_to_seconds(Beat(event.duration), self.bpm),
			volume = event.volume,
			instrument = track.instrument,
			frequency = event.pitch.to_frequency()
		)

	def ended (self) -> bool:

		"""
		True once a non-looping composition has been delivered in full.

		A looping scheduler never ends.  An empty composition has ended as soon
		as it is set.
		"""

		if self.looped or self.composition is None:
			return False

		for cursor in self._cursors:

			end = cursor.track.get_end(self.time_signature)

			if end is None:
				continue

			if not cursor.primed or cursor.position < end:
				return False

		return True
