"""Client name normalization and fuzzy matching.

Plant operators type client names by hand on the batching controller, so
the same company shows up with missing accents, extra suffixes
("SARL Beton Plus Construction") or reordered words. Two heuristics are
applied, in order:

1. contains_match: one space-stripped name contains the other
2. word_set_match: most words of the shorter name appear in the longer one
"""

import re
import unicodedata
from typing import Optional, Set


WORD_OVERLAP_THRESHOLD = 0.8
MIN_WORDS_FOR_OVERLAP = 2

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    """Remove diacritics: 'Béton' -> 'Beton'."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_text(text: Optional[str]) -> str:
    """Normalize a name for fuzzy comparison.

    Steps:
    1. Strip diacritics
    2. Lowercase
    3. Drop everything except a-z, 0-9 and whitespace
    4. Collapse whitespace and trim

    Args:
        text: Raw name (may be None)

    Returns:
        Normalized string, empty if nothing usable remains

    Examples:
        >>> normalize_text("  Société Générale, S.A. ")
        'societe generale sa'
    """
    if not text:
        return ""
    result = strip_accents(text).lower()
    result = _NON_ALNUM.sub("", result)
    return _WHITESPACE.sub(" ", result).strip()


def exact_key(text: Optional[str]) -> str:
    """Key for exact comparison: trimmed, case-folded, accent-free."""
    if not text:
        return ""
    return strip_accents(text.strip()).casefold()


def words(text: str) -> Set[str]:
    return set(text.split()) if text else set()


def contains_match(a: str, b: str) -> bool:
    """True if one normalized, space-stripped name contains the other.

    Both inputs are expected to be normalize_text output. Empty names never
    match.
    """
    compact_a = a.replace(" ", "")
    compact_b = b.replace(" ", "")
    if not compact_a or not compact_b:
        return False
    return compact_a in compact_b or compact_b in compact_a


def word_set_match(a: str, b: str) -> bool:
    """True if at least 80% of the smaller word set appears in the larger one.

    The smaller set must have at least two words; a single shared word
    ("beton") is too weak to call a match.
    """
    words_a = words(a)
    words_b = words(b)
    smaller, larger = (words_a, words_b) if len(words_a) <= len(words_b) else (words_b, words_a)

    if len(smaller) < MIN_WORDS_FOR_OVERLAP:
        return False

    overlap = len(smaller & larger)
    return overlap / len(smaller) >= WORD_OVERLAP_THRESHOLD


def fuzzy_client_match(a: Optional[str], b: Optional[str]) -> bool:
    """Apply contains_match then word_set_match on normalized names."""
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return False
    return contains_match(norm_a, norm_b) or word_set_match(norm_a, norm_b)
