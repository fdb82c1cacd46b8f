import typing

import mido
import pytest

import turtlesong.scheduler


class FakeMidiOut:

	"""MIDI output stub that keeps every message it is sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		self.sent.append(message)

	def close (self) -> None:

		self.closed = True


class RecordingSink:

	"""Audio sink stub that logs play / release calls in order."""

	def __init__ (self) -> None:

		self.calls: typing.List[typing.Tuple[str, turtlesong.scheduler.ScheduledSound]] = []
		self.closed = False

	def play (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		self.calls.append(("play", sound))

	def release (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		self.calls.append(("release", sound))

	def close (self) -> None:

		self.closed = True


def _fake_get_output_names () -> typing.List[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> typing.List[FakeMidiOut]:

	"""Patch mido to use fake MIDI outputs; returns every output opened, in order."""

	opened: typing.List[FakeMidiOut] = []

	def fake_open_output (name: str) -> FakeMidiOut:

		output = FakeMidiOut()
		opened.append(output)
		return output

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", fake_open_output)

	return opened


@pytest.fixture
def fake_output () -> FakeMidiOut:

	return FakeMidiOut()


@pytest.fixture
def recording_sink () -> RecordingSink:

	return RecordingSink()
