"""Include/exclude query parsing and client-side matching (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import FrozenSet, Iterable

# Punctuation that glues words together in listing titles ("nr.", "(valt als 22)").
_CLEAR_RE = re.compile(r"[.,;:!?()\[\]{}\"'/|]+")


def tokenize(text: str) -> FrozenSet[str]:
    """Split text into a set of case-folded words."""

    return frozenset(word.casefold() for word in _CLEAR_RE.sub(" ", text).split())


@dataclass(frozen=True)
class ParsedQuery:
    """Query text split into include and exclude token sets."""

    include: FrozenSet[str]
    exclude: FrozenSet[str]

    def search_text(self) -> str:
        """Text for backends that only understand plain full-text search."""

        return " ".join(sorted(self.include))

    def unparse(self) -> str:
        """Canonical text form, order-independent and without duplicates."""

        parts = sorted(self.include)
        parts.extend(f"-{token}" for token in sorted(self.exclude))
        return " ".join(parts)

    def matches(self, words: Iterable[str]) -> bool:
        """Return True if every include token and no exclude token is present.

        Matching logic:
        - Any exclude token among the words rejects the item.
        - Otherwise all include tokens must be among the words.
        """

        available = frozenset(words)
        if self.exclude & available:
            return False
        return self.include <= available


def parse_query(text: str) -> ParsedQuery:
    """Parse `"-samsung smartphone"` into include={smartphone}, exclude={samsung}."""

    include: set[str] = set()
    exclude: set[str] = set()
    for token in text.split():
        if token.startswith("-"):
            exclude.update(tokenize(token[1:]))
        else:
            include.update(tokenize(token))
    return ParsedQuery(include=frozenset(include), exclude=frozenset(exclude))
