"""
Query normalization for search caching and analytics.

Canonicalizes free-text search input before it is used as a cache
fingerprint component or matched against the catalog: case folding,
whitespace collapsing and whole-token stop-word removal.
"""

from __future__ import annotations

STOP_WORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
    }
)


def tokenize(raw: str | None) -> list[str]:
    """Split a raw query into lowercase tokens with stop words removed.

    Matching is whole-token only: "theater" survives even though it starts
    with "the". Token order is preserved.
    """
    if not raw:
        return []
    return [token for token in raw.lower().split() if token not in STOP_WORDS]


def optimize_query(raw: str | None) -> str:
    """
    Normalize a raw search query.

    Args:
        raw: User-supplied query text

    Returns:
        Lowercased, whitespace-collapsed query without stop words. An empty
        string means "browse all" rather than an error.
    """
    return " ".join(tokenize(raw))
