"""Parser combinators and the scanners for grammar / music-string text.

A scanner takes the remaining input and returns ``(value, rest)``, or raises
``ScanError``.  Small scanners are glued together with the combinators below;
alternation is LL(1): ``disjoint`` looks at a fixed prefix of the input and
commits to one branch without backtracking, so every choice point in the
language must be decidable from its first characters.

**Syntax:**

```
Grammar        := "start " NonTerminal newline Production*
Production     := NonTerminal "=" MusicString
MusicString    := MusicPrimitive*
MusicPrimitive := Symbol | "{" MusicString ("|" MusicString)* "}" | "[" uint "][" MusicString "]"
Symbol         := NonTerminal | ":" Terminal
NonTerminal    := [A-Za-z-][A-Za-z0-9-]*
Terminal       := Note ("<" Duration ">")? | ":" MetaControl
Note           := "_" | [0-9]? [a-gA-G] ("#" | "b")?
Duration       := uint | uint "/" uint
MetaControl    := "i=" InstrumentName | "v=" uint
```

Example:
	```
	start S
	S = [3][:4c<1> :4d :_ :f# :g :c ::i=piano B]
	B = :0c
	```
"""

import logging
import re
import string
import typing

import turtlesong.constants

from turtlesong.composition import Pitch
from turtlesong.grammar import (
	ChangeInstrument,
	ChangeVolume,
	Grammar,
	MusicString,
	NonTerminal,
	Note,
	Production,
	Repeat,
	Rest,
	Simple,
	Split,
)
from turtlesong.music_time import Beat


logger = logging.getLogger(__name__)

T = typing.TypeVar("T")
U = typing.TypeVar("U")

ScanResult = typing.Tuple[T, str]

_NON_TERMINAL_PATTERN = re.compile(r"[A-Za-z-][A-Za-z0-9-]*")
_INSTRUMENT_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_]*")
_UNSIGNED_PATTERN = re.compile(r"[0-9]+")


class ScanError (Exception):

	"""
	Malformed input.  A plain ``ScanError`` carries a free-form reason.
	"""


class ExpectedEither (ScanError):

	"""Neither alternative of a ``disjoint`` matched the input prefix."""

	def __init__ (self, expected_a: str, expected_b: str) -> None:

		super().__init__(f"Expected either {expected_a!r} or {expected_b!r}")
		self.expected_a = expected_a
		self.expected_b = expected_b


class Scanner (typing.Generic[T]):

	"""
	Base class for every scanner.
	"""

	def scan (self, text: str) -> ScanResult:

		"""Return ``(value, rest)`` or raise ``ScanError``."""

		raise NotImplementedError


# ----------------------------------------------------------------------
# Combinators
# ----------------------------------------------------------------------

class _Concat (Scanner[typing.Tuple[T, U]]):

	def __init__ (self, first: Scanner[T], second: Scanner[U]) -> None:

		self.first = first
		self.second = second

	def scan (self, text: str) -> ScanResult:

		a, rest = self.first.scan(text)
		b, rest = self.second.scan(rest)

		return (a, b), rest


class _Disjoint (Scanner[T]):

	def __init__ (self, prefix_a: str, scanner_a: Scanner[T], prefix_b: typing.Optional[str], scanner_b: Scanner[T]) -> None:

		self.prefix_a = prefix_a
		self.scanner_a = scanner_a
		self.prefix_b = prefix_b
		self.scanner_b = scanner_b

	def scan (self, text: str) -> ScanResult:

		if text.startswith(self.prefix_a):
			return self.scanner_a.scan(text)

		if self.prefix_b is None:
			return self.scanner_b.scan(text)

		if text.startswith(self.prefix_b):
			return self.scanner_b.scan(text)

		raise ExpectedEither(self.prefix_a, self.prefix_b)


class _Kleene (Scanner[typing.List[T]]):

	def __init__ (self, scanner: Scanner[T]) -> None:

		self.scanner = scanner

	def scan (self, text: str) -> ScanResult:

		results: typing.List[T] = []

		while True:

			try:
				value, rest = self.scanner.scan(text)
			except ScanError:
				break

			results.append(value)

			# A scanner that matched without consuming anything would repeat forever.
			if rest == text:
				break

			text = rest

		return results, text


class _Map (Scanner[U]):

	def __init__ (self, scanner: Scanner[T], mapper: typing.Callable[[T], U]) -> None:

		self.scanner = scanner
		self.mapper = mapper

	def scan (self, text: str) -> ScanResult:

		value, rest = self.scanner.scan(text)

		return self.mapper(value), rest


class _MapInput (Scanner[T]):

	def __init__ (self, scanner: Scanner[T], mapper: typing.Callable[[str], str]) -> None:

		self.scanner = scanner
		self.mapper = mapper

	def scan (self, text: str) -> ScanResult:

		return self.scanner.scan(self.mapper(text))


class _Consume (Scanner[T]):

	def __init__ (self, scanner: Scanner[T]) -> None:

		self.scanner = scanner

	def scan (self, text: str) -> ScanResult:

		value, rest = self.scanner.scan(text)

		if rest:
			raise ScanError(f"Did not consume entire input (left {rest!r})")

		return value, rest


class _Literal (Scanner[str]):

	def __init__ (self, expected: str) -> None:

		self.expected = expected

	def scan (self, text: str) -> ScanResult:

		if not text.startswith(self.expected):
			raise ScanError(f"Expected string: {self.expected!r}")

		return self.expected, text[len(self.expected):]


class _Space (Scanner[None]):

	def scan (self, text: str) -> ScanResult:

		trimmed = text.lstrip()

		if len(trimmed) == len(text):
			raise ScanError("Expected space")

		return None, trimmed


class _Bracketed (Scanner[T]):

	def __init__ (self, open_char: str, close_char: str, scanner: Scanner[T]) -> None:

		self.open_char = open_char
		self.close_char = close_char
		self.scanner = scanner

	def scan (self, text: str) -> ScanResult:

		if not text.startswith(self.open_char):
			raise ScanError(f"Expected {self.open_char!r}")

		inner = text[1:]
		end = find_matching(inner, self.open_char, self.close_char)

		if end is None:
			raise ScanError(f"Expected {self.close_char!r}")

		value, _ = self.scanner.scan(inner[:end])

		return value, inner[end + 1:]


def concat (first: Scanner[T], second: Scanner[U]) -> Scanner[typing.Tuple[T, U]]:

	"""Run ``first`` then ``second`` on the remainder and pair the results."""

	return _Concat(first, second)


def disjoint (prefix_a: str, scanner_a: Scanner[T], prefix_b: typing.Optional[str], scanner_b: Scanner[T]) -> Scanner[T]:

	"""
	Dispatch on the input prefix.

	Input starting with ``prefix_a`` goes to ``scanner_a``.  Otherwise, when
	``prefix_b`` is ``None`` the input goes to ``scanner_b`` unconditionally;
	when it is given, input must start with it or ``ExpectedEither`` is raised.
	"""

	return _Disjoint(prefix_a, scanner_a, prefix_b, scanner_b)


def kleene (scanner: Scanner[T]) -> Scanner[typing.List[T]]:

	"""Repeat ``scanner`` until it fails, collecting zero or more results.  Never fails."""

	return _Kleene(scanner)


def scan_map (scanner: Scanner[T], mapper: typing.Callable[[T], U]) -> Scanner[U]:

	"""Transform a successful result."""

	return _Map(scanner, mapper)


def scan_map_input (scanner: Scanner[T], mapper: typing.Callable[[str], str]) -> Scanner[T]:

	"""Transform the input before ``scanner`` sees it."""

	return _MapInput(scanner, mapper)


def consume (scanner: Scanner[T]) -> Scanner[T]:

	"""Fail unless ``scanner`` consumes the entire input."""

	return _Consume(scanner)


def trim (scanner: Scanner[T]) -> Scanner[T]:

	"""Strip surrounding whitespace from the input first."""

	return scan_map_input(scanner, str.strip)


def literal (expected: str) -> Scanner[str]:

	return _Literal(expected)


def space () -> Scanner[None]:

	"""Match one or more whitespace characters."""

	return _Space()


def bracketed (open_char: str, close_char: str, scanner: Scanner[T]) -> Scanner[T]:

	"""
	Run ``scanner`` on the text between ``open_char`` and its matching ``close_char``.

	``scanner`` sees only the enclosed text; the result's remainder is the text
	after the closing character.
	"""

	return _Bracketed(open_char, close_char, scanner)


def find_matching (text: str, open_char: str, close_char: str) -> typing.Optional[int]:

	"""
	Return the offset of the ``close_char`` that balances an already-consumed ``open_char``.

	``text`` starts just after the first opening character.  Nested pairs of
	the same characters are counted; other delimiters are ignored.
	"""

	depth = 1

	for i, char in enumerate(text):

		if char == open_char:
			depth += 1

		elif char == close_char:
			depth -= 1

			if depth == 0:
				return i

	return None


def _split_top_level (text: str, separator: str) -> typing.List[str]:

	"""Split on ``separator`` where it is not nested inside ``{}`` or ``[]``."""

	parts: typing.List[str] = []
	depth = 0
	current: typing.List[str] = []

	for char in text:

		if char in "{[":
			depth += 1

		elif char in "}]":
			depth -= 1

		if char == separator and depth == 0:
			parts.append("".join(current))
			current = []

		else:
			current.append(char)

	parts.append("".join(current))

	return parts


class _PatternScanner (Scanner[str]):

	def __init__ (self, pattern: "re.Pattern[str]", label: str) -> None:

		self.pattern = pattern
		self.label = label

	def scan (self, text: str) -> ScanResult:

		match = self.pattern.match(text)

		if match is None:
			found = text[:1] or "end of input"
			raise ScanError(f"Expected {self.label} but got {found!r}")

		return match.group(0), text[match.end():]


class UnsignedScanner (Scanner[int]):

	"""One or more decimal digits."""

	def __init__ (self) -> None:

		self._digits = _PatternScanner(_UNSIGNED_PATTERN, "an unsigned integer")

	def scan (self, text: str) -> ScanResult:

		digits, rest = self._digits.scan(text)

		return int(digits), rest


# ----------------------------------------------------------------------
# Concrete scanners
# ----------------------------------------------------------------------

class NonTerminalScanner (Scanner[NonTerminal]):

	def __init__ (self) -> None:

		self._scanner = scan_map(_PatternScanner(_NON_TERMINAL_PATTERN, "a non-terminal"), NonTerminal)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class InstrumentScanner (Scanner[str]):

	"""Instrument names are matched case-insensitively and stored lower-case."""

	def __init__ (self) -> None:

		self._scanner = scan_map(_PatternScanner(_INSTRUMENT_PATTERN, "an instrument name"), str.lower)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class VolumeScanner (UnsignedScanner):

	pass


class MetaControlScanner (Scanner[typing.Union[ChangeInstrument, ChangeVolume]]):

	"""``i=<instrument>`` or ``v=<volume>``."""

	def __init__ (self) -> None:

		self._scanner = disjoint(
			"i=", scan_map(scan_map_input(InstrumentScanner(), lambda s: s[2:]), ChangeInstrument),
			"v=", scan_map(scan_map_input(VolumeScanner(), lambda s: s[2:]), ChangeVolume)
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class NoteScanner (Scanner[typing.Optional[Pitch]]):

	"""
	A pitch, or ``None`` for the rest symbol ``_``.

	An optional single octave digit (default 4) precedes the letter; a
	trailing ``#`` or ``b`` raises or lowers the letter's offset by one.
	"""

	def scan (self, text: str) -> ScanResult:

		if not text:
			raise ScanError("Expected a note: octave number or note letter")

		if text[0] == "_":
			return None, text[1:]

		octave = turtlesong.constants.DEFAULT_OCTAVE
		index = 0

		if text[0] in string.digits:
			octave = int(text[0])
			index = 1

		if index >= len(text):
			raise ScanError(f"Expected a note letter [a-g] after octave {octave}")

		letter = text[index].lower()

		if letter not in turtlesong.constants.NOTE_OFFSETS:
			raise ScanError(f"Expected a note letter [a-g] but got {text[index]!r}")

		offset = turtlesong.constants.NOTE_OFFSETS[letter]
		index += 1

		if index < len(text):
			if text[index] == turtlesong.constants.SHARP:
				offset += 1
				index += 1
			elif text[index] == turtlesong.constants.FLAT:
				offset -= 1
				index += 1

		return Pitch(octave, offset), text[index:]


class _RatioScanner (Scanner[Beat]):

	def __init__ (self) -> None:

		self._unsigned = UnsignedScanner()

	def scan (self, text: str) -> ScanResult:

		numerator, rest = self._unsigned.scan(text)

		if not rest.startswith("/"):
			return Beat(numerator), rest

		denominator, rest = self._unsigned.scan(rest[1:])

		if denominator == 0:
			raise ScanError(f"Duration {numerator}/0 has a zero denominator")

		return Beat(numerator, denominator), rest


class DurationScanner (Scanner[Beat]):

	"""``<n>`` or ``<n/d>`` in beats; absent means one beat."""

	def __init__ (self) -> None:

		self._bracketed = bracketed("<", ">", consume(trim(_RatioScanner())))

	def scan (self, text: str) -> ScanResult:

		if not text.startswith("<"):
			return Beat(turtlesong.constants.DEFAULT_DURATION_BEATS), text

		return self._bracketed.scan(text)


def _make_note (pair: typing.Tuple[typing.Optional[Pitch], Beat]) -> typing.Union[Note, Rest]:

	pitch, duration = pair

	if pitch is None:
		return Rest(duration)

	return Note(pitch, duration)


class TerminalScanner (Scanner[typing.Union[Note, Rest, ChangeInstrument, ChangeVolume]]):

	"""A note or rest with optional duration, or ``:`` followed by a meta-control."""

	def __init__ (self) -> None:

		self._scanner = disjoint(
			":", scan_map_input(MetaControlScanner(), lambda s: s[1:]),
			None, scan_map(concat(NoteScanner(), DurationScanner()), _make_note)
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class SymbolScanner (Scanner[typing.Any]):

	"""``:`` introduces a terminal; anything else must be a non-terminal."""

	def __init__ (self) -> None:

		self._scanner = disjoint(
			":", scan_map_input(TerminalScanner(), lambda s: s[1:]),
			None, NonTerminalScanner()
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class _BranchesScanner (Scanner[Split]):

	def scan (self, text: str) -> ScanResult:

		branches = tuple(
			consume(MusicStringScanner()).scan(part)[0]
			for part in _split_top_level(text, "|")
		)

		return Split(branches), ""


class SplitScanner (Scanner[Split]):

	"""``{a | b | ...}`` with each branch a full music string."""

	def __init__ (self) -> None:

		self._scanner = bracketed("{", "}", _BranchesScanner())

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class RepeatScanner (Scanner[Repeat]):

	"""``[n][content]``."""

	def __init__ (self) -> None:

		count = scan_map(
			concat(concat(literal("["), UnsignedScanner()), literal("]")),
			lambda parts: parts[0][1]
		)

		self._scanner = scan_map(
			concat(count, bracketed("[", "]", consume(MusicStringScanner()))),
			lambda parts: Repeat(num=parts[0], content=parts[1])
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class MusicPrimitiveScanner (Scanner[typing.Union[Simple, Split, Repeat]]):

	def __init__ (self) -> None:

		self._scanner = disjoint(
			"{", SplitScanner(),
			None, disjoint(
				"[", RepeatScanner(),
				None, scan_map(SymbolScanner(), Simple)
			)
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class MusicStringScanner (Scanner[MusicString]):

	"""
	Zero or more primitives separated by optional whitespace.

	Scanning stops at the first primitive that does not parse: the primitives
	so far are returned together with the unconsumed text, and a warning is
	logged.  Callers that need the whole input wrap this in ``consume``.
	"""

	def scan (self, text: str) -> ScanResult:

		primitives, rest = kleene(scan_map_input(MusicPrimitiveScanner(), str.lstrip)).scan(text)
		rest = rest.lstrip()

		if rest:
			logger.warning(f"Stopped scanning music string at {rest!r}")

		return MusicString(tuple(primitives)), rest


class ProductionScanner (Scanner[Production]):

	"""``Head = body``; text after a body that stops parsing is returned as the remainder."""

	def __init__ (self) -> None:

		head = scan_map(concat(NonTerminalScanner(), trim(literal("="))), lambda parts: parts[0])

		self._scanner = scan_map(
			concat(head, MusicStringScanner()),
			lambda parts: Production(head=parts[0], body=parts[1])
		)

	def scan (self, text: str) -> ScanResult:

		return self._scanner.scan(text)


class GrammarScanner (Scanner[Grammar]):

	"""
	A ``start`` line followed by one production per non-blank line.

	Text left over on any line is dropped with a warning rather than failing
	the whole grammar; a line that does not start as a production is an error.
	"""

	def __init__ (self) -> None:

		self._start = scan_map(concat(literal("start"), concat(space(), NonTerminalScanner())), lambda parts: parts[1][1])
		self._production = ProductionScanner()

	def scan (self, text: str) -> ScanResult:

		lines = [line.strip() for line in text.splitlines() if line.strip()]

		if not lines:
			raise ScanError("Expected at least one line")

		start, rest = self._start.scan(lines[0])

		if rest.strip():
			logger.warning(f"Dropping unparsed text after start symbol: {rest.strip()!r}")

		productions: typing.List[Production] = []

		for line in lines[1:]:

			production, rest = self._production.scan(line)

			if rest.strip():
				logger.warning(f"Dropping unparsed text in production for {production.head.name!r}: {rest.strip()!r}")

			productions.append(production)

		return Grammar(start=start, productions=tuple(productions)), ""


def parse_grammar (text: str) -> Grammar:

	"""Parse grammar text, raising ``ScanError`` when it is malformed."""

	grammar, _ = consume(GrammarScanner()).scan(text)

	return grammar


def parse_music_string (text: str) -> MusicString:

	"""Parse a complete music string, raising ``ScanError`` if any of it is left over."""

	music_string, _ = consume(MusicStringScanner()).scan(text)

	return music_string
