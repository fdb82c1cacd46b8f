import logging

import turtlesong
import turtlesong.playback


logging.basicConfig(level=logging.INFO)

GRAMMAR = """
start Song
Song = ::v=70 Verse Verse Chorus
Verse = [2][:c :e :g :e] {:2c<4> | ::i=bass :1c<2> :1g<2>}
Verse = [2][:d :f :a :f] {:2d<4> | ::i=bass :1d<2> :1a<2>}
Chorus = ::i=piano [4][:g<1/2> :e<1/2>] {:c<4> | :e<4> | :g<4>}
"""

config = turtlesong.PlaybackConfig(
	bpm = 110,
	loop = True,
	iterations = 2,
	random = True,
	seed = 3,
	programs = {"sine": 80, "bass": 33, "piano": 0}
)

grammar = turtlesong.parse_grammar(GRAMMAR)

for missing in grammar.missing_productions():
	logging.warning(f"Grammar has no production for {missing}")

string = grammar.derive(config.iterations, random=config.random, rng=config.make_rng())
composition = turtlesong.compose(string, config.time_signature)

print(turtlesong.render_composition(composition, columns=48))

scheduler = config.make_scheduler()
scheduler.set_composition(composition)

# Four passes round the loop.
turtlesong.playback.run(scheduler, config.make_sink(), tick_seconds=config.tick_seconds, max_seconds=4 * scheduler.loop_seconds())
