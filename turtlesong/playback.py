"""Real-time playback: poll a scheduler and drive a sink on time.

The loop polls the scheduler once per tick.  Each returned sound becomes a
start entry and a release entry on a time-ordered heap, and the loop sleeps
until whichever comes first: the next due entry or the next poll.  When the
scheduler has ended the loop keeps running until the last release is sent, so
trailing notes are never cut short.
"""

import asyncio
import heapq
import itertools
import logging
import time
import typing

import turtlesong.scheduler


logger = logging.getLogger(__name__)

# Releases sort before starts at the same instant so a repeated note is retriggered cleanly.
_RELEASE = 0
_START = 1


class AudioSink (typing.Protocol):

	"""Anything that can sound scheduled notes."""

	def play (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		"""Start ``sound`` now."""

	def release (self, sound: turtlesong.scheduler.ScheduledSound) -> None:

		"""Stop ``sound`` now; called once its duration has passed."""

	def close (self) -> None:

		"""Free any output resources."""


async def play (
	scheduler: turtlesong.scheduler.Scheduler,
	sink: AudioSink,
	tick_seconds: float = 0.05,
	stop_event: typing.Optional[asyncio.Event] = None,
	max_seconds: typing.Optional[float] = None,
	clock: typing.Callable[[], float] = time.perf_counter
) -> int:

	"""
	Play the scheduler's composition through ``sink`` until it ends.

	Parameters:
		scheduler: A scheduler with a composition already set.
		sink: Receives ``play`` at each sound's start and ``release`` at its end.
		tick_seconds: Interval between scheduler polls.  Should be shorter than
			the scheduler's lookahead.
		stop_event: Set it to stop early.  Sounds already started are released
			immediately.
		max_seconds: Stop polling after this long (needed to finish a looping
			scheduler without a stop event).
		clock: Monotonic time source, in seconds.

	Returns:
		The number of sounds started.
	"""

	if tick_seconds <= 0:
		raise ValueError("Tick interval must be positive")

	pending: typing.List[typing.Tuple[float, int, int, turtlesong.scheduler.ScheduledSound]] = []
	counter = itertools.count()
	sounding: typing.Set[int] = set()
	started = 0

	polling = True
	next_poll = 0.0
	start_time = clock()

	logger.info("Playback started")

	try:

		while True:

			if stop_event is not None and stop_event.is_set():
				logger.info("Playback stopped")
				break

			now = clock() - start_time

			if polling and now >= next_poll:

				for sound in scheduler.poll(now):

					if sound.duration <= 0:
						logger.debug(f"Skipping zero-length sound at {sound.start:.3f}s")
						continue

					sound_id = next(counter)
					heapq.heappush(pending, (sound.start, _START, sound_id, sound))
					heapq.heappush(pending, (sound.get_end(), _RELEASE, sound_id, sound))

				next_poll = max(next_poll + tick_seconds, now)

				if scheduler.ended() or (max_seconds is not None and now >= max_seconds):
					polling = False
					logger.debug(f"Stopped polling at {now:.3f}s with {len(pending)} entries pending")

			while pending and pending[0][0] <= now:

				_, kind, sound_id, sound = heapq.heappop(pending)

				if kind == _START:
					sink.play(sound)
					sounding.add(sound_id)
					started += 1
				else:
					sounding.discard(sound_id)
					sink.release(sound)

			if not polling and not pending:
				break

			wake = min(
				pending[0][0] if pending else float("inf"),
				next_poll if polling else float("inf")
			)

			await asyncio.sleep(max(0.0, wake - (clock() - start_time)))

	finally:

		for _, kind, sound_id, sound in sorted(pending):
			if kind == _RELEASE and sound_id in sounding:
				sink.release(sound)

	logger.info(f"Playback finished after {started} sounds")

	return started


def run (
	scheduler: turtlesong.scheduler.Scheduler,
	sink: AudioSink,
	tick_seconds: float = 0.05,
	max_seconds: typing.Optional[float] = None
) -> int:

	"""Blocking wrapper around ``play`` that closes the sink afterwards."""

	try:
		return asyncio.run(play(scheduler, sink, tick_seconds=tick_seconds, max_seconds=max_seconds))
	finally:
		sink.close()
