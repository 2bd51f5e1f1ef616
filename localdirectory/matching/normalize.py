"""Text normalization and similarity used for matching and deduplication."""

import re

from rapidfuzz.distance import Levenshtein

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_LEGAL_SUFFIXES = re.compile(r"\b(llc|inc|corp|co|ltd|company)\b")
_NON_DIGITS = re.compile(r"\D")


def normalize_business_name(name: str | None) -> str:
    """Lowercase, drop punctuation and legal suffixes, collapse whitespace.

    "Joe's Plumbing, LLC" -> "joes plumbing"
    """
    if not name:
        return ""
    text = _PUNCTUATION.sub("", name.lower())
    text = _LEGAL_SUFFIXES.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_text(text: str | None) -> str:
    """Lowercase, punctuation to spaces, collapse whitespace."""
    if not text:
        return ""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def normalize_address(address: str | None) -> str:
    return normalize_text(address)


def normalize_phone(phone: str | None) -> str:
    """Digits only, so "(555) 123-4567" equals "555.123.4567"."""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)


def string_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]: 1 - distance / len(longer)."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def comment_similarity(a: str | None, b: str | None) -> float:
    """Similarity of two review comments after trimming and lowercasing."""
    return string_similarity((a or "").strip().lower(), (b or "").strip().lower())


def same_author(a: str | None, b: str | None) -> bool:
    """Case-insensitive author name equality; blank names never match."""
    if not a or not b:
        return False
    return a.strip().casefold() == b.strip().casefold()
