"""Normalisation and fingerprint helpers used for duplicate lookup."""

from __future__ import annotations

import hashlib
import re

from newsbird.models import ContentItem

# Length of the hex digest kept as a fingerprint.
_DIGEST_CHARS = 16
# Only the opening of a description is fingerprinted.
CONTENT_PREFIX_CHARS = 200
# Words this short carry no signal for fuzzy title matching.
_MIN_WORD_CHARS = 4
_SHINGLE_SIZE = 3

_WORD_RE = re.compile(r"\w+")


def normalize(text: str | None) -> str:
    """Lowercase and trim *text*; ``None`` becomes the empty string."""
    return (text or "").strip().lower()


def fingerprint(text: str) -> str:
    """Deterministic short digest of *text*, stable across runs and processes."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]


def title_hash(title: str) -> str:
    return fingerprint(normalize(title))


def url_hash(url: str) -> str:
    return fingerprint(normalize(url))


def content_prefix(description: str | None) -> str:
    return normalize(description)[:CONTENT_PREFIX_CHARS]


def content_hash(description: str | None) -> str:
    """Fingerprint of the normalised description opening, or ``""`` when absent."""
    prefix = content_prefix(description)
    return fingerprint(prefix) if prefix else ""


def item_hashes(item: ContentItem) -> tuple[str, str, str]:
    """Return ``(title_hash, url_hash, content_hash)`` for *item*."""
    return title_hash(item.title), url_hash(item.url), content_hash(item.description)


def significant_words(title: str) -> set[str]:
    """Whitespace tokens of the normalised title longer than three characters."""
    return {word for word in normalize(title).split() if len(word) >= _MIN_WORD_CHARS}


def shingles(text: str, size: int = _SHINGLE_SIZE) -> set[tuple[str, ...]]:
    """Word n-grams of *text*; short texts yield a single shingle of all words."""
    words = _WORD_RE.findall(normalize(text))
    if not words:
        return set()
    if len(words) <= size:
        return {tuple(words)}
    return {tuple(words[i : i + size]) for i in range(len(words) - size + 1)}


def jaccard(a: set, b: set) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)
