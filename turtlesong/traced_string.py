"""Derivations that remember how they were made.

A ``TracedString`` wraps a music string and records, for each top-level
position that held a non-terminal, the production that replaced it together
with the trace of that production's body.  Expansions can be undone one
position at a time, which allows a derivation to be explored interactively
instead of being rewritten wholesale.
"""

import logging
import random
import typing

from turtlesong.grammar import Grammar, MusicPrimitive, MusicString, NonTerminal, Production, Simple


logger = logging.getLogger(__name__)


class TracedString:

	"""
	A music string plus the productions applied at its positions.

	Only top-level ``Simple`` non-terminals are traced.  Non-terminals inside
	splits and repeats are left for ``MusicString.parallel_rewrite``.
	"""

	def __init__ (self, original: MusicString) -> None:

		self.original = original
		self.productions: typing.Dict[int, typing.Tuple[Production, "TracedString"]] = {}

	def _non_terminal_at (self, index: int) -> NonTerminal:

		if not 0 <= index < len(self.original):
			raise IndexError(f"Position {index} is outside a string of length {len(self.original)}")

		primitive = self.original.primitives[index]

		if not isinstance(primitive, Simple) or not isinstance(primitive.symbol, NonTerminal):
			raise ValueError(f"Position {index} holds {primitive}, not a non-terminal")

		return primitive.symbol

	def expand (self, index: int, production: Production) -> "TracedString":

		"""
		Replace the non-terminal at ``index`` with ``production``'s body.

		Returns the child trace for the body so it can be expanded further.
		Expanding a position again replaces its previous expansion.

		Raises:
			IndexError: If ``index`` is out of range.
			ValueError: If the position does not hold ``production.head``.
		"""

		non_terminal = self._non_terminal_at(index)

		if production.head != non_terminal:
			raise ValueError(f"Production for {production.head.name!r} cannot expand {non_terminal.name!r}")

		child = TracedString(production.body)
		self.productions[index] = (production, child)

		return child

	def collapse (self, index: int) -> Production:

		"""
		Undo the expansion at ``index`` and everything beneath it.

		Returns the production that had been applied.

		Raises:
			KeyError: If nothing is expanded at ``index``.
		"""

		if index not in self.productions:
			raise KeyError(f"Position {index} is not expanded")

		production, _ = self.productions.pop(index)

		return production

	def is_expanded (self, index: int) -> bool:

		return index in self.productions

	def child (self, index: int) -> typing.Optional["TracedString"]:

		entry = self.productions.get(index)

		return entry[1] if entry is not None else None

	def render (self) -> MusicString:

		"""Flatten the trace into the music string it currently stands for."""

		primitives: typing.List[MusicPrimitive] = []

		for index, primitive in enumerate(self.original):

			if index in self.productions:
				_, child = self.productions[index]
				primitives.extend(child.render().primitives)
			else:
				primitives.append(primitive)

		return MusicString(tuple(primitives))

	def expand_all (self, grammar: Grammar, random: bool = False, rng: typing.Optional["random.Random"] = None) -> int:

		"""
		Expand every unexpanded non-terminal by one production, at any depth.

		Positions that are already expanded are descended into, so each call
		deepens the derivation by one step.  A non-terminal with no production
		is left in place and logged.

		Returns the number of expansions made.
		"""

		count = 0

		for index, primitive in enumerate(self.original):

			if index in self.productions:
				count += self.productions[index][1].expand_all(grammar, random=random, rng=rng)
				continue

			if not isinstance(primitive, Simple) or not isinstance(primitive.symbol, NonTerminal):
				continue

			non_terminal = primitive.symbol

			if random:
				production = grammar.get_production_random(non_terminal, rng)
			else:
				production = grammar.get_production(non_terminal)

			if production is None:
				logger.warning(f"No production for {non_terminal.name!r}; leaving it unexpanded")
				continue

			self.expand(index, production)
			count += 1

		return count

	def depth (self) -> int:

		"""Length of the longest chain of expansions below this string."""

		if not self.productions:
			return 0

		return 1 + max(child.depth() for _, child in self.productions.values())
