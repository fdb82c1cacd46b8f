import asyncio
import typing

import pytest

import turtlesong.composer
import turtlesong.playback
import turtlesong.scan

from turtlesong.music_time import MusicTime, TimeSignature
from turtlesong.scheduler import Scheduler


COMMON = TimeSignature.common()


class FakeClock:

	"""A clock that only moves when playback sleeps."""

	def __init__ (self) -> None:

		self.now = 0.0
		self.sleeps: typing.List[float] = []

	def __call__ (self) -> float:

		return self.now

	async def sleep (self, seconds: float) -> None:

		self.sleeps.append(seconds)
		self.now += seconds


@pytest.fixture
def fake_clock (monkeypatch: pytest.MonkeyPatch) -> FakeClock:

	clock = FakeClock()
	monkeypatch.setattr(turtlesong.playback.asyncio, "sleep", clock.sleep)

	return clock


def _scheduler (text: str, bpm: float = 60, **kwargs: typing.Any) -> Scheduler:

	scheduler = Scheduler(bpm=bpm, time_signature=COMMON, lookahead=MusicTime.beats(1), **kwargs)
	scheduler.set_composition(turtlesong.composer.compose(turtlesong.scan.parse_music_string(text), COMMON))

	return scheduler


@pytest.mark.asyncio
async def test_plays_each_sound_on_time (fake_clock: FakeClock, recording_sink) -> None:

	"""Every sound starts at its start time and is released at its end."""

	started = await turtlesong.playback.play(_scheduler(":c :d<2> :e"), recording_sink, tick_seconds=0.25, clock=fake_clock)

	assert started == 3

	plays = [sound.start for kind, sound in recording_sink.calls if kind == "play"]
	releases = [sound.get_end() for kind, sound in recording_sink.calls if kind == "release"]

	assert plays == [0.0, 1.0, 3.0]
	assert releases == [1.0, 3.0, 4.0]
	assert fake_clock.now == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_release_before_retrigger (fake_clock: FakeClock, recording_sink) -> None:

	"""At a shared instant the old note is released before the next starts."""

	await turtlesong.playback.play(_scheduler(":c :c"), recording_sink, tick_seconds=0.5, clock=fake_clock)

	assert [(kind, sound.start) for kind, sound in recording_sink.calls] == [
		("play", 0.0),
		("release", 0.0),
		("play", 1.0),
		("release", 1.0),
	]


@pytest.mark.asyncio
async def test_looping_stops_after_max_seconds (fake_clock: FakeClock, recording_sink) -> None:

	"""A looping scheduler plays until the time limit, then finishes held notes."""

	scheduler = _scheduler(":c :d", looped=True)

	started = await turtlesong.playback.play(scheduler, recording_sink, tick_seconds=0.5, max_seconds=4.0, clock=fake_clock)

	plays = [sound.start for kind, sound in recording_sink.calls if kind == "play"]

	assert plays[:5] == [0.0, 1.0, 2.0, 3.0, 4.0]
	assert started == len(plays)
	assert sum(1 for kind, _ in recording_sink.calls if kind == "release") == started


@pytest.mark.asyncio
async def test_stop_event_releases_started_sounds (recording_sink) -> None:

	"""Stopping early releases what is sounding and skips what has not started."""

	stop = asyncio.Event()
	scheduler = _scheduler(":c<100> :d", bpm=600)

	task = asyncio.ensure_future(turtlesong.playback.play(scheduler, recording_sink, tick_seconds=0.01, stop_event=stop))

	await asyncio.sleep(0.1)
	stop.set()
	started = await task

	assert started == 1
	assert [kind for kind, _ in recording_sink.calls] == ["play", "release"]


@pytest.mark.asyncio
async def test_zero_length_sounds_are_skipped (fake_clock: FakeClock, recording_sink) -> None:

	"""Notes with no duration are never started."""

	started = await turtlesong.playback.play(_scheduler(":c<0> :d"), recording_sink, tick_seconds=0.5, clock=fake_clock)

	assert started == 1


def test_invalid_tick (recording_sink) -> None:

	"""The tick interval must be positive."""

	with pytest.raises(ValueError):
		asyncio.run(turtlesong.playback.play(_scheduler(":c"), recording_sink, tick_seconds=0))


def test_run_closes_sink (recording_sink) -> None:

	"""The blocking runner closes the sink when playback ends."""

	started = turtlesong.playback.run(_scheduler(":c", bpm=6000), recording_sink, tick_seconds=0.001)

	assert started == 1
	assert recording_sink.closed
