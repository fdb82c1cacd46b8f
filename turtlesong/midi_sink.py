"""Sound scheduled notes on a MIDI output with mido.

Each instrument name gets its own MIDI channel the first time it plays.
Instruments listed as percussion share channel 10 (index 9), which no other
instrument is given.  An optional program map sends a program change when a
channel is first allocated.

Everything sent can also be recorded and written to a Standard MIDI File when
the sink is closed.
"""

import datetime
import logging
import math
import typing

import mido

import turtlesong.midi_utils
import turtlesong.scheduler

from turtlesong.composition import volume_to_gain


logger = logging.getLogger(__name__)

PERCUSSION_CHANNEL = 9
MIDI_CHANNELS = 16
TICKS_PER_BEAT = 480


def frequency_to_midi_note (frequency: float) -> int:

	"""Nearest MIDI note to ``frequency`` (A440 is note 69), clamped to 0-127."""

	if frequency <= 0:
		raise ValueError(f"Frequency must be positive (got {frequency})")

	note = round(69 + 12 * math.log2(frequency / 440.0))

	return max(0, min(127, note))


def volume_to_velocity (volume: int) -> int:

	return round(volume_to_gain(volume) * 127)


class MidiSink:

	"""
	Plays ``ScheduledSound`` records as MIDI note on / note off pairs.
	"""

	def __init__ (
		self,
		output: typing.Any,
		program_map: typing.Optional[typing.Dict[str, int]] = None,
		percussion: typing.Iterable[str] = (),
		bpm: float = 120,
		record: bool = False,
		record_filename: typing.Optional[str] = None
	) -> None:

		"""
		Parameters:
			output: An open mido output port (anything with ``send`` and ``close``).
			program_map: Instrument name to General MIDI program (0-127).
			percussion: Instrument names to play on the percussion channel.
			bpm: Tempo written to the recording.
			record: Keep every message sent and save it on ``close``.
			record_filename: Recording path (default ``session_<timestamp>.mid``).
		"""

		self.output = output
		self.program_map = dict(program_map or {})
		self.percussion = set(percussion)
		self.bpm = bpm

		self.recording = record
		self.record_filename = record_filename
		self.recorded_events: typing.List[typing.Tuple[float, mido.Message]] = []

		self.channels: typing.Dict[str, int] = {}
		self._free_channels = [c for c in range(MIDI_CHANNELS) if c != PERCUSSION_CHANNEL]
		self._active: typing.Dict[typing.Tuple[int, int], int] = {}
		self._last_time = 0.0

	@classmethod
	def open (cls, device_name: typing.Optional[str] = None, **kwargs: typing.Any) -> "MidiSink":

		"""
		Select and open an output with ``turtlesong.midi_utils`` and wrap it.

		Raises:
			RuntimeError: If no MIDI output could be opened.
		"""

		name, port = turtlesong.midi_utils.select_output_device(device_name)

		if port is None:
			raise RuntimeError("No MIDI output available")

		logger.info(f"Playing to MIDI output '{name}'")

		return cls(port, **kwargs)

	def channel_for (self, instrument: str) -> int:

		"""Return the instrument's channel, allocating one on first use."""

		if instrument in self.channels:
			return self.channels[instrument]

		if instrument in self.percussion:
			channel = PERCUSSION_CHANNEL

		elif self._free_channels:
			channel = self._free_channels.pop(0)

		else:
			# Out of channels: share one with an earlier instrument.
			melodic = [c for c in range(MIDI_CHANNELS) if c != PERCUSSION_CHANNEL]
			channel = melodic[len(self.channels) % len(melodic)]
			logger.warning(f"No free MIDI channel for '{instrument}'; sharing channel {channel + 1}")

		self.channels[instrument] = channel

		if instrument in self.program_map:
			self._send(mido.Message("program_change", channel=channel, program=self.program_map[instrument]), self._last_time)

		logger.debug(f"Instrument '{instrument}' on MIDI channel {channel + 1}")

		return channel

	def play (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		velocity = volume_to_velocity(sound.volume)

		if velocity == 0:
			return

		channel = self.channel_for(sound.instrument)
		note = frequency_to_midi_note(sound.frequency)
		key = (channel, note)

		self._active[key] = self._active.get(key, 0) + 1
		self._send(mido.Message("note_on", channel=channel, note=note, velocity=velocity), sound.start)

	def release (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		"""Send note off once every overlapping copy of the note has ended."""

		if volume_to_velocity(sound.volume) == 0:
			return

		channel = self.channel_for(sound.instrument)
		note = frequency_to_midi_note(sound.frequency)
		key = (channel, note)

		count = self._active.get(key, 0)

		if count == 0:
			return

		if count > 1:
			self._active[key] = count - 1
			return

		del self._active[key]
		self._send(mido.Message("note_off", channel=channel, note=note, velocity=0), sound.get_end())

	def all_notes_off (self) -> None:

		"""Release every note still sounding."""

		for channel, note in list(self._active):
			self._send(mido.Message("note_off", channel=channel, note=note, velocity=0), self._last_time)

		self._active.clear()

	def close (self) -> None:

		self.all_notes_off()

		if self.recording:
			self.save_recording()

		try:
			self.output.close()
		except Exception:
			logger.exception("Failed to close MIDI output")

	def _send (self, message: mido.Message, at_seconds: float) -> None:

		self._last_time = max(self._last_time, at_seconds)

		try:
			self.output.send(message)
		except Exception:
			logger.exception(f"Failed to send MIDI {message.type} message")

		if self.recording:
			self.recorded_events.append((at_seconds, message.copy()))

	def save_recording (self) -> typing.Optional[str]:

		"""
		Write the recorded messages to a type 1 MIDI file at 480 ticks per beat.

		Returns the filename, or ``None`` if there was nothing to save.
		"""

		if not self.recorded_events:
			return None

		filename = self.record_filename or datetime.datetime.now().strftime("session_%Y%m%d_%H%M%S.mid")

		logger.info(f"Saving MIDI recording ({len(self.recorded_events)} events) to {filename}")

		midi_file = mido.MidiFile(type=1, ticks_per_beat=TICKS_PER_BEAT)
		track = mido.MidiTrack()
		midi_file.tracks.append(track)

		track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(self.bpm), time=0))

		ticks_per_second = self.bpm / 60.0 * TICKS_PER_BEAT
		last_tick = 0

		for seconds, message in sorted(self.recorded_events, key=lambda item: item[0]):

			tick = max(last_tick, round(seconds * ticks_per_second))
			track.append(message.copy(time=tick - last_tick))
			last_tick = tick

		try:
			midi_file.save(filename)
		except OSError:
			logger.exception("Failed to save MIDI recording")
			return None

		logger.info(f"Saved {filename}")

		return filename
