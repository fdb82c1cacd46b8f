"""
turtlesong - procedural music from context-free grammars.

A grammar describes a piece as rewrite rules over note symbols.  Turtlesong
parses the grammar, rewrites the start symbol a fixed number of times (every
non-terminal at once, L-system style), composes the resulting string into
exactly timed tracks and plays them in real time, looping if asked.

```python
import turtlesong

grammar = turtlesong.parse_grammar('''
start S
S = ::i=piano [2][:c :e :g :e] B
B = {:2c<4> | :2g<4>}
''')

composition = turtlesong.compose(grammar.derive(2), turtlesong.TimeSignature.common())
print(turtlesong.render_composition(composition, columns=32))
```

The pipeline:

- **Scanning.** ``turtlesong.scan`` is a small parser-combinator library and
  the scanners for grammar and music-string text.
- **Rewriting.** ``Grammar.derive()`` / ``MusicString.parallel_rewrite()``,
  deterministic or random under an injected ``random.Random``.
  ``TracedString`` keeps a derivation that can be expanded and undone step
  by step.
- **Composing.** ``compose()`` walks the string like a turtle, turning notes,
  rests, splits and repeats into ``Track`` events at exact rational times.
- **Scheduling.** ``Scheduler.poll()`` returns the sounds due in a lookahead
  window, wrapping cleanly around a loop boundary.
- **Playback.** ``turtlesong.playback.play()`` drives any sink on time;
  ``MidiSink`` sends the notes to a MIDI port with mido and can record them.
"""

from turtlesong.composer import ComposeError, MismatchedLengthsError, compose
from turtlesong.composition import Composition, Event, Pitch, Track, TrackId
from turtlesong.config import PlaybackConfig, load_config
from turtlesong.display import render_composition, render_track
from turtlesong.grammar import (
	ChangeInstrument,
	ChangeVolume,
	Grammar,
	MissingProductionError,
	MusicString,
	NonTerminal,
	Note,
	Production,
	Repeat,
	Rest,
	Simple,
	Split,
)
from turtlesong.midi_sink import MidiSink
from turtlesong.music_time import Beat, MusicTime, MusicTimeError, TimeSignature
from turtlesong.scan import ExpectedEither, ScanError, parse_grammar, parse_music_string
from turtlesong.scheduler import ScheduledSound, Scheduler
from turtlesong.traced_string import TracedString
