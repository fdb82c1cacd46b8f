"""Playback settings loaded from YAML.

```yaml
playback:
  bpm: 120
  time_signature: 4/4
  lookahead_beats: 1
  loop: true
  loop_beats: 16        # omit to loop over the composition's own length
  tick_seconds: 0.05

rewrite:
  iterations: 4
  random: true
  seed: 7

midi:
  output_device: "Scarlett 2i4 USB MIDI 1"
  programs:
    piano: 0
    bass: 33
  percussion: [drums]
  record: false
```

Every key is optional.
"""

import dataclasses
import fractions
import logging
import os
import random
import typing

import yaml

import turtlesong.midi_sink
import turtlesong.scheduler

from turtlesong.music_time import Beat, MusicTime, TimeSignature


logger = logging.getLogger(__name__)


class ConfigError (ValueError):

	"""A configuration value has the wrong shape."""


@dataclasses.dataclass
class PlaybackConfig:

	"""Settings for one playback session."""

	bpm: float = 120
	time_signature: TimeSignature = dataclasses.field(default_factory=TimeSignature.common)
	lookahead_beats: Beat = Beat(1)
	loop: bool = False
	loop_beats: typing.Optional[Beat] = None
	tick_seconds: float = 0.05

	iterations: int = 4
	random: bool = False
	seed: typing.Optional[int] = None

	output_device: typing.Optional[str] = None
	programs: typing.Dict[str, int] = dataclasses.field(default_factory=dict)
	percussion: typing.List[str] = dataclasses.field(default_factory=list)
	record: bool = False
	record_filename: typing.Optional[str] = None

	def make_scheduler (self) -> turtlesong.scheduler.Scheduler:

		loop_time = None

		if self.loop_beats is not None:
			loop_time = MusicTime.from_beats(self.loop_beats, self.time_signature)

		return turtlesong.scheduler.Scheduler(
			bpm = self.bpm,
			time_signature = self.time_signature,
			lookahead = MusicTime.from_beats(self.lookahead_beats, self.time_signature),
			looped = self.loop,
			loop_time = loop_time
		)

	def make_rng (self) -> "random.Random":

		"""A random source, seeded when ``seed`` is set so derivations repeat."""

		return random.Random(self.seed)

	def make_sink (self, output: typing.Optional[typing.Any] = None) -> turtlesong.midi_sink.MidiSink:

		"""Wrap ``output``, or open ``output_device``, as a MIDI sink with these settings."""

		options: typing.Dict[str, typing.Any] = dict(
			program_map = self.programs,
			percussion = self.percussion,
			bpm = self.bpm,
			record = self.record,
			record_filename = self.record_filename
		)

		if output is None:
			return turtlesong.midi_sink.MidiSink.open(self.output_device, **options)

		return turtlesong.midi_sink.MidiSink(output, **options)


def _parse_time_signature (value: typing.Any) -> TimeSignature:

	if isinstance(value, str) and "/" in value:
		beats, unit = value.split("/", 1)
		return TimeSignature(int(beats), int(unit))

	if isinstance(value, (list, tuple)) and len(value) == 2:
		return TimeSignature(int(value[0]), int(value[1]))

	raise ConfigError(f"Time signature must look like '4/4' or [4, 4] (got {value!r})")


def _parse_beats (value: typing.Any, key: str) -> Beat:

	try:
		beats = fractions.Fraction(str(value))
	except (ValueError, ZeroDivisionError) as e:
		raise ConfigError(f"{key} must be a number of beats (got {value!r})") from e

	if beats < 0:
		raise ConfigError(f"{key} cannot be negative")

	return beats


def _section (data: typing.Dict[str, typing.Any], name: str) -> typing.Dict[str, typing.Any]:

	section = data.get(name) or {}

	if not isinstance(section, dict):
		raise ConfigError(f"Section '{name}' must be a mapping")

	return section


def parse_config (data: typing.Optional[typing.Dict[str, typing.Any]]) -> PlaybackConfig:

	"""Build a ``PlaybackConfig`` from already-loaded YAML data."""

	config = PlaybackConfig()

	if not data:
		return config

	if not isinstance(data, dict):
		raise ConfigError("Configuration must be a mapping")

	playback = _section(data, "playback")
	rewrite = _section(data, "rewrite")
	midi = _section(data, "midi")

	if "bpm" in playback:
		config.bpm = float(playback["bpm"])
		if config.bpm <= 0:
			raise ConfigError("bpm must be positive")

	if "time_signature" in playback:
		config.time_signature = _parse_time_signature(playback["time_signature"])

	if "lookahead_beats" in playback:
		config.lookahead_beats = _parse_beats(playback["lookahead_beats"], "lookahead_beats")

	config.loop = bool(playback.get("loop", config.loop))

	if playback.get("loop_beats") is not None:
		config.loop_beats = _parse_beats(playback["loop_beats"], "loop_beats")

	config.tick_seconds = float(playback.get("tick_seconds", config.tick_seconds))

	config.iterations = int(rewrite.get("iterations", config.iterations))
	config.random = bool(rewrite.get("random", config.random))
	config.seed = rewrite.get("seed", config.seed)

	config.output_device = midi.get("output_device", config.output_device)
	config.programs = {str(k): int(v) for k, v in (midi.get("programs") or {}).items()}
	config.percussion = [str(name) for name in (midi.get("percussion") or [])]
	config.record = bool(midi.get("record", config.record))
	config.record_filename = midi.get("record_filename", config.record_filename)

	return config


def load_config (config_path: str = "config.yaml") -> PlaybackConfig:

	"""
	Load playback settings from a YAML file.

	A missing file is not an error: a warning is logged and the defaults are used.

	Raises:
		ConfigError: If a value in the file has the wrong shape.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return PlaybackConfig()

	with open(config_path, "r") as f:
		data = yaml.safe_load(f)

	config = parse_config(data)

	logger.info(f"Loaded config from {config_path}: {config.bpm} BPM in {config.time_signature}")

	return config
