"""
Text utilities for product identity matching.

Normalization strips accents so "Bösendorfer" and "Bosendorfer" compare
equal, then reduces punctuation and case noise.
"""

import math
import re
import unicodedata
from typing import Optional

from rapidfuzz.distance import Levenshtein

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping base characters.

    - "Bösendorfer" → "Bosendorfer"
    - "Café" → "Cafe"
    """
    # NFD separates base chars from combining accent marks (category 'Mn')
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_match_text(text: Optional[str]) -> str:
    """
    Normalize a brand/model/title for comparison.

    - "Bang & Olufsen" → "bang olufsen"
    - "  HD-600 (Black) " → "hd 600 black"

    Args:
        text: Raw value (may be None)

    Returns:
        Lowercase ASCII-ish string with single spaces, or "" for empty input
    """
    if not text:
        return ""

    text = strip_accents(text).lower()
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (round() would use banker's rounding)."""
    return int(math.floor(value + 0.5))


def similarity(a: Optional[str], b: Optional[str]) -> int:
    """
    Levenshtein similarity on a 0-100 scale.

    round((1 - distance / max_len) * 100); identical strings, including
    two empty strings, score 100.
    """
    s1 = (a or "").strip().lower()
    s2 = (b or "").strip().lower()

    if s1 == s2:
        return 100

    max_length = max(len(s1), len(s2))
    distance = Levenshtein.distance(s1, s2)
    return round_half_up((1 - distance / max_length) * 100)
