"""Search query normalization and hashing (core domain)."""

from __future__ import annotations

import hashlib
import re

from core.models import SearchQuery


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_query_text(text: str) -> str:
    """Normalize query text so equivalent queries share one hash."""

    return _collapse_whitespace(text).lower()


def compute_query_hash(normalized_text: str) -> int:
    """Return a deterministic signed 64-bit hash of normalized query text.

    The hash stands in for the text wherever the payload size is limited,
    e.g. inside `/start` deep links.
    """

    digest = hashlib.blake2b(normalized_text.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little", signed=True)


def make_search_query(text: str) -> SearchQuery:
    """Build a SearchQuery from raw user input."""

    normalized = normalize_query_text(text)
    return SearchQuery(text=normalized, hash=compute_query_hash(normalized))
