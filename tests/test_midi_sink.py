import logging
import pathlib
import typing

import mido
import pytest

import turtlesong.midi_sink
import turtlesong.midi_utils

from turtlesong.composition import Pitch
from turtlesong.scheduler import ScheduledSound


def _sound (start: float = 0.0, duration: float = 1.0, volume: int = 100, instrument: str = "sine", pitch: Pitch = Pitch(4, 9)) -> ScheduledSound:

	return ScheduledSound(start=start, duration=duration, volume=volume, instrument=instrument, frequency=pitch.to_frequency())


def _notes (output) -> list:

	return [(m.type, m.channel, m.note, m.velocity) for m in output.sent if m.type in ("note_on", "note_off")]


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

def test_frequency_to_midi_note () -> None:

	"""Frequencies map to the nearest MIDI note."""

	assert turtlesong.midi_sink.frequency_to_midi_note(440.0) == 69
	assert turtlesong.midi_sink.frequency_to_midi_note(445.0) == 69
	assert turtlesong.midi_sink.frequency_to_midi_note(Pitch(4, 3).to_frequency()) == Pitch(4, 3).to_midi_note()
	assert turtlesong.midi_sink.frequency_to_midi_note(1.0) == 0

	with pytest.raises(ValueError):
		turtlesong.midi_sink.frequency_to_midi_note(0.0)


def test_volume_to_velocity () -> None:

	"""Volume 0-100 scales to velocity 0-127, clamped."""

	assert turtlesong.midi_sink.volume_to_velocity(0) == 0
	assert turtlesong.midi_sink.volume_to_velocity(100) == 127
	assert turtlesong.midi_sink.volume_to_velocity(250) == 127


# ---------------------------------------------------------------------------
# Playing
# ---------------------------------------------------------------------------

def test_play_and_release (fake_output) -> None:

	"""A sound becomes a note on followed by a note off."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	sink.play(_sound())
	sink.release(_sound())

	assert _notes(fake_output) == [("note_on", 0, 69, 127), ("note_off", 0, 69, 0)]


def test_channels_per_instrument (fake_output) -> None:

	"""Each instrument gets its own channel; percussion uses channel 10."""

	sink = turtlesong.midi_sink.MidiSink(fake_output, percussion=["drums"])

	sink.play(_sound(instrument="sine"))
	sink.play(_sound(instrument="drums"))
	sink.play(_sound(instrument="bass"))

	assert sink.channels == {"sine": 0, "drums": 9, "bass": 1}


def test_channels_skip_percussion_when_allocating (fake_output) -> None:

	"""Melodic instruments never land on the percussion channel."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	for i in range(15):
		sink.channel_for(f"voice{i}")

	assert turtlesong.midi_sink.PERCUSSION_CHANNEL not in sink.channels.values()
	assert len(set(sink.channels.values())) == 15


def test_channel_sharing_when_full (fake_output, caplog: pytest.LogCaptureFixture) -> None:

	"""A sixteenth melodic instrument shares a channel and is reported."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	for i in range(15):
		sink.channel_for(f"voice{i}")

	with caplog.at_level(logging.WARNING, logger="turtlesong.midi_sink"):
		channel = sink.channel_for("extra")

	assert channel != turtlesong.midi_sink.PERCUSSION_CHANNEL
	assert "sharing channel" in caplog.text


def test_program_change_on_first_use (fake_output) -> None:

	"""Mapped instruments send their program once, before the first note."""

	sink = turtlesong.midi_sink.MidiSink(fake_output, program_map={"bass": 33})

	sink.play(_sound(instrument="bass"))
	sink.play(_sound(instrument="bass", start=1.0))

	programs = [m for m in fake_output.sent if m.type == "program_change"]

	assert len(programs) == 1
	assert (programs[0].channel, programs[0].program) == (0, 33)
	assert fake_output.sent[0].type == "program_change"


def test_silent_sound_is_skipped (fake_output) -> None:

	"""Volume zero sends nothing."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	sink.play(_sound(volume=0))
	sink.release(_sound(volume=0))

	assert fake_output.sent == []


def test_overlapping_same_note (fake_output) -> None:

	"""A note held twice is only released when both copies end."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	sink.play(_sound(start=0.0, duration=2.0))
	sink.play(_sound(start=1.0, duration=2.0))
	sink.release(_sound(start=0.0, duration=2.0))

	assert [n[0] for n in _notes(fake_output)] == ["note_on", "note_on"]

	sink.release(_sound(start=1.0, duration=2.0))

	assert [n[0] for n in _notes(fake_output)] == ["note_on", "note_on", "note_off"]


def test_close_releases_and_closes (fake_output) -> None:

	"""Closing turns off held notes and closes the port."""

	sink = turtlesong.midi_sink.MidiSink(fake_output)

	sink.play(_sound())
	sink.close()

	assert _notes(fake_output)[-1] == ("note_off", 0, 69, 0)
	assert fake_output.closed


def test_send_failure_is_logged (caplog: pytest.LogCaptureFixture) -> None:

	"""A failing port is logged rather than raised."""

	class BrokenOutput:

		def send (self, message: mido.Message) -> None:

			raise OSError("unplugged")

		def close (self) -> None:

			return None

	sink = turtlesong.midi_sink.MidiSink(BrokenOutput())

	with caplog.at_level(logging.ERROR, logger="turtlesong.midi_sink"):
		sink.play(_sound())

	assert "Failed to send MIDI note_on" in caplog.text


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

def test_recording_saved_on_close (fake_output, tmp_path: pathlib.Path) -> None:

	"""Recorded notes are written to a MIDI file with tick-accurate timing."""

	filename = str(tmp_path / "take.mid")
	sink = turtlesong.midi_sink.MidiSink(fake_output, bpm=120, record=True, record_filename=filename)

	sink.play(_sound(start=0.0, duration=0.5))
	sink.release(_sound(start=0.0, duration=0.5))
	sink.play(_sound(start=1.0, duration=0.5, pitch=Pitch(4, 3)))
	sink.close()

	midi_file = mido.MidiFile(filename)

	assert midi_file.ticks_per_beat == 480

	messages = [m for m in midi_file.tracks[0] if not m.is_meta]

	assert [(m.type, m.note, m.time) for m in messages] == [
		("note_on", 69, 0),
		("note_off", 69, 480),
		("note_on", 63, 480),
		("note_off", 63, 0),
	]


def test_no_recording_without_events (fake_output, tmp_path: pathlib.Path) -> None:

	"""Nothing recorded means no file."""

	sink = turtlesong.midi_sink.MidiSink(fake_output, record=True, record_filename=str(tmp_path / "none.mid"))

	assert sink.save_recording() is None
	assert not (tmp_path / "none.mid").exists()


# ---------------------------------------------------------------------------
# Device selection
# ---------------------------------------------------------------------------

def test_select_named_device (patch_midi: typing.List) -> None:

	"""A named device that exists is opened."""

	name, port = turtlesong.midi_utils.select_output_device("Dummy MIDI")

	assert name == "Dummy MIDI"
	assert port is patch_midi[0]


def test_select_missing_device (patch_midi: typing.List) -> None:

	"""An unknown name opens nothing."""

	assert turtlesong.midi_utils.select_output_device("Nope") == (None, None)
	assert patch_midi == []


def test_select_single_device_automatically (patch_midi: typing.List) -> None:

	"""With one device and no name, that device is used."""

	name, port = turtlesong.midi_utils.select_output_device()

	assert name == "Dummy MIDI"
	assert port is patch_midi[0]


def test_open_sink_without_devices (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Opening a sink with no outputs available raises."""

	monkeypatch.setattr(mido, "get_output_names", lambda: [])

	with pytest.raises(RuntimeError):
		turtlesong.midi_sink.MidiSink.open()
