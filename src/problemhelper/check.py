"""Token equivalence between a program's output and the expected answer.

Only the tokens matter: any run of whitespace (spaces, tabs, newlines)
separates tokens and is never compared itself. Non-breaking spaces
(U+00A0, U+2007, U+202F) and NEL (U+0085) are not separators; they stay
inside tokens. Two texts are equivalent when they contain the
same tokens in the same order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import zip_longest

_SEPARATOR = re.compile(r"[^\S\u0085\u00a0\u2007\u202f]+")


@dataclass(frozen=True)
class Mismatch:
    """First position where the token sequences differ.

    A side whose tokens ran out has ``None`` at that position.
    """

    index: int
    actual: str | None
    expected: str | None

    def describe(self) -> str:
        actual = repr(self.actual) if self.actual is not None else "end of output"
        expected = repr(self.expected) if self.expected is not None else "end of output"
        return f"token {self.index + 1}: expected {expected}, got {actual}"


def tokenize(text: str) -> list[str]:
    """Split on any whitespace run, dropping empty tokens."""
    return [token for token in _SEPARATOR.split(text) if token]


def check(actual: str, expected: str) -> bool:
    """True iff both texts have identical token sequences."""
    return tokenize(actual) == tokenize(expected)


def find_mismatch(actual: str, expected: str) -> Mismatch | None:
    """Locate the first differing token, or None when equivalent."""
    pairs = zip_longest(tokenize(actual), tokenize(expected))
    for index, (got, want) in enumerate(pairs):
        if got != want:
            return Mismatch(index=index, actual=got, expected=want)
    return None
