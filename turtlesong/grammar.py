"""Symbols, music strings, grammars and parallel rewriting.

A grammar is a start symbol plus a list of productions.  Rewriting replaces
every non-terminal in a music string at once (one L-system style derivation
step), copying terminals unchanged and recursing into split branches and
repeat bodies without changing their shape.

```python
grammar = turtlesong.scan.parse_grammar("start S\\nS = :c S :e\\n")
string = grammar.derive(3)		# :c :c :c S :e :e :e
```

All values here are immutable: rewriting always returns a new ``MusicString``.
Text produced by ``str()`` / ``Grammar.to_text()`` parses back to an equal
value with ``turtlesong.scan``.
"""

import dataclasses
import logging
import random
import typing

from turtlesong.composition import Instrument, Pitch, Volume
from turtlesong.music_time import Beat


logger = logging.getLogger(__name__)


class MissingProductionError (LookupError):

	"""Raised by strict rewriting when a non-terminal has no production."""

	def __init__ (self, non_terminal: "NonTerminal") -> None:

		super().__init__(f"No production for non-terminal {non_terminal.name!r}")
		self.non_terminal = non_terminal


def _format_beats (beats: Beat) -> str:

	if beats.denominator == 1:
		return str(beats.numerator)

	return f"{beats.numerator}/{beats.denominator}"


# ----------------------------------------------------------------------
# Symbols
# ----------------------------------------------------------------------

@dataclasses.dataclass (frozen=True)
class NonTerminal:

	"""A named placeholder that productions rewrite."""

	name: str

	def __str__ (self) -> str:

		return self.name


@dataclasses.dataclass (frozen=True)
class Note:

	"""A sounding note terminal."""

	pitch: Pitch
	duration: Beat

	def __str__ (self) -> str:

		return f":{self.pitch.name()}<{_format_beats(self.duration)}>"


@dataclasses.dataclass (frozen=True)
class Rest:

	"""A silent terminal that still takes time."""

	duration: Beat

	def __str__ (self) -> str:

		return f":_<{_format_beats(self.duration)}>"


@dataclasses.dataclass (frozen=True)
class ChangeInstrument:

	"""Meta-control: later notes use ``instrument``."""

	instrument: Instrument

	def __str__ (self) -> str:

		return f"::i={self.instrument}"


@dataclasses.dataclass (frozen=True)
class ChangeVolume:

	"""Meta-control: later notes play at ``volume``."""

	volume: Volume

	def __str__ (self) -> str:

		return f"::v={self.volume}"


Terminal = typing.Union[Note, Rest, ChangeInstrument, ChangeVolume]
Symbol = typing.Union[NonTerminal, Terminal]


# ----------------------------------------------------------------------
# Music strings
# ----------------------------------------------------------------------

@dataclasses.dataclass (frozen=True)
class Simple:

	"""A single symbol."""

	symbol: Symbol

	def __str__ (self) -> str:

		return str(self.symbol)


@dataclasses.dataclass (frozen=True)
class Split:

	"""Parallel sub-phrases that must all last the same time."""

	branches: typing.Tuple["MusicString", ...]

	def __str__ (self) -> str:

		return "{" + " | ".join(str(b) for b in self.branches) + "}"


@dataclasses.dataclass (frozen=True)
class Repeat:

	"""A sub-phrase played ``num`` times back to back."""

	num: int
	content: "MusicString"

	def __str__ (self) -> str:

		return f"[{self.num}][{self.content}]"


MusicPrimitive = typing.Union[Simple, Split, Repeat]


def _default_rng () -> random.Random:

	return random.Random()


@dataclasses.dataclass (frozen=True)
class MusicString:

	"""
	An ordered sequence of music primitives.
	"""

	primitives: typing.Tuple[MusicPrimitive, ...] = ()

	@classmethod
	def of (cls, *primitives: typing.Union[MusicPrimitive, Symbol]) -> "MusicString":

		"""Build a string, wrapping bare symbols in ``Simple``."""

		return cls(tuple(p if isinstance(p, (Simple, Split, Repeat)) else Simple(p) for p in primitives))

	def __len__ (self) -> int:

		return len(self.primitives)

	def __iter__ (self) -> typing.Iterator[MusicPrimitive]:

		return iter(self.primitives)

	def __str__ (self) -> str:

		return " ".join(str(p) for p in self.primitives)

	def nonterminals (self) -> typing.List[NonTerminal]:

		"""Every non-terminal left in the string, including inside splits and repeats, in order."""

		found: typing.List[NonTerminal] = []

		for primitive in self.primitives:

			if isinstance(primitive, Simple):
				if isinstance(primitive.symbol, NonTerminal):
					found.append(primitive.symbol)

			elif isinstance(primitive, Split):
				for branch in primitive.branches:
					found.extend(branch.nonterminals())

			elif isinstance(primitive, Repeat):
				found.extend(primitive.content.nonterminals())

		return found

	def is_terminal (self) -> bool:

		"""True when no non-terminal is left to rewrite."""

		return not self.nonterminals()

	def parallel_rewrite (
		self,
		grammar: "Grammar",
		random: bool = False,
		rng: typing.Optional[random.Random] = None,
		strict: bool = False
	) -> "MusicString":

		"""
		Perform one simultaneous derivation step.

		Every non-terminal is replaced by the body of a production in the same
		pass.  Terminals are copied; split branches and repeat bodies are
		rewritten in place.

		Parameters:
			grammar: The productions to apply.
			random: Pick uniformly among all matching productions instead of
				the first one.
			rng: Random source used when ``random`` is set (a fresh
				``random.Random`` when omitted).
			strict: Raise ``MissingProductionError`` for a non-terminal with no
				production.  Otherwise the symbol is dropped from the result
				and a warning is logged.
		"""

		if random and rng is None:
			rng = _default_rng()

		rewritten: typing.List[MusicPrimitive] = []

		for primitive in self.primitives:

			if isinstance(primitive, Simple):

				if not isinstance(primitive.symbol, NonTerminal):
					rewritten.append(primitive)
					continue

				non_terminal = primitive.symbol

				if random:
					production = grammar.get_production_random(non_terminal, rng)
				else:
					production = grammar.get_production(non_terminal)

				if production is None:
					if strict:
						raise MissingProductionError(non_terminal)
					logger.warning(f"No production for {non_terminal.name!r}; dropping it from the string")
					continue

				rewritten.extend(production.body.primitives)

			elif isinstance(primitive, Split):
				rewritten.append(Split(tuple(
					branch.parallel_rewrite(grammar, random=random, rng=rng, strict=strict)
					for branch in primitive.branches
				)))

			elif isinstance(primitive, Repeat):
				rewritten.append(Repeat(
					num = primitive.num,
					content = primitive.content.parallel_rewrite(grammar, random=random, rng=rng, strict=strict)
				))

			else:
				raise TypeError(f"Unknown music primitive {primitive!r}")

		return MusicString(tuple(rewritten))

	def parallel_rewrite_n (
		self,
		grammar: "Grammar",
		random: bool,
		n: int,
		rng: typing.Optional[random.Random] = None,
		strict: bool = False
	) -> "MusicString":

		"""
		Apply ``parallel_rewrite`` exactly ``n`` times.

		There is no fixpoint or cycle detection: a grammar that keeps producing
		non-terminals grows on every step.
		"""

		if n < 0:
			raise ValueError("Rewrite count cannot be negative")

		if random and rng is None:
			rng = _default_rng()

		string = self

		for _ in range(n):
			string = string.parallel_rewrite(grammar, random=random, rng=rng, strict=strict)

		return string


# ----------------------------------------------------------------------
# Grammars
# ----------------------------------------------------------------------

@dataclasses.dataclass (frozen=True)
class Production:

	"""One rewrite rule: ``head = body``."""

	head: NonTerminal
	body: MusicString

	def __str__ (self) -> str:

		return f"{self.head} = {self.body}"


@dataclasses.dataclass (frozen=True)
class Grammar:

	"""
	A start symbol and an unordered list of productions.

	Several productions may share a head, which makes the grammar
	nondeterministic when rewritten with ``random=True``.
	"""

	start: NonTerminal
	productions: typing.Tuple[Production, ...] = ()

	def get_production (self, non_terminal: NonTerminal) -> typing.Optional[Production]:

		"""Return the first production for ``non_terminal``, or ``None``."""

		for production in self.productions:
			if production.head == non_terminal:
				return production

		return None

	def get_productions (self, non_terminal: NonTerminal) -> typing.List[Production]:

		return [p for p in self.productions if p.head == non_terminal]

	def get_production_random (self, non_terminal: NonTerminal, rng: typing.Optional[random.Random] = None) -> typing.Optional[Production]:

		"""Pick uniformly among every production for ``non_terminal``; ``None`` if there are none."""

		candidates = self.get_productions(non_terminal)

		if not candidates:
			return None

		return (rng or _default_rng()).choice(candidates)

	def missing_productions (self) -> typing.List[NonTerminal]:

		"""
		Non-terminals referenced by the start symbol or a body that no production defines.

		Rewriting silently drops these symbols unless ``strict`` is set, so this
		is the place to catch authoring mistakes up front.
		"""

		heads = {p.head for p in self.productions}
		missing: typing.List[NonTerminal] = []

		for non_terminal in [self.start] + [nt for p in self.productions for nt in p.body.nonterminals()]:
			if non_terminal not in heads and non_terminal not in missing:
				missing.append(non_terminal)

		return missing

	def start_string (self) -> MusicString:

		return MusicString((Simple(self.start),))

	def derive (
		self,
		n: int,
		random: bool = False,
		rng: typing.Optional[random.Random] = None,
		strict: bool = False
	) -> MusicString:

		"""Rewrite the start symbol ``n`` times."""

		return self.start_string().parallel_rewrite_n(self, random, n, rng=rng, strict=strict)

	def to_text (self) -> str:

		"""Serialise in the format ``turtlesong.scan.parse_grammar`` reads."""

		lines = [f"start {self.start}"]
		lines.extend(str(p) for p in self.productions)

		return "\n".join(lines) + "\n"
