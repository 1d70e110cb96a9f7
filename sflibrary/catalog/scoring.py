"""
Relevance scoring for autocomplete candidates.

Candidate pools are small (a few dozen rows pre-filtered by the store
with a substring match), so a tiered heuristic is enough: exact matches
beat prefix matches, which beat word-prefix matches, which beat plain
substring matches.
"""

from __future__ import annotations

import unicodedata
from typing import Optional

EXACT = 100
PREFIX = 80
WORD_PREFIX = 65
SUBSTRING = 45
NO_MATCH = 0


def normalize(text: Optional[str]) -> str:
    """Lowercase, strip diacritics and trim.

    ``"  Čapek "`` becomes ``"capek"``. Characters are decomposed with NFKD
    and combining marks in U+0300..U+036F are dropped.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    stripped = "".join(ch for ch in decomposed if not "\u0300" <= ch <= "\u036f")
    return stripped.strip()


def score(query: Optional[str], candidate: Optional[str]) -> int:
    """Return a relevance score in ``[0, 100]`` for ``candidate``."""
    q = normalize(query)
    if not q:
        return NO_MATCH
    c = normalize(candidate)
    if c == q:
        return EXACT
    if c.startswith(q):
        return PREFIX
    if any(word.startswith(q) for word in c.split()):
        return WORD_PREFIX
    if q in c:
        return SUBSTRING
    return NO_MATCH
