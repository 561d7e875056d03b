"""Relevance scoring for a single chapter.

The score of a chapter for a list of search terms is

    num_matches * product(frequency multipliers) * proximity multiplier

where ``num_matches`` is the number of distinct terms that occur at all,
each term's frequency multiplier is ``1 + sqrt(len(term) * count /
len(text))``, and the proximity multiplier rewards every pair of terms
that occur close to each other with ``1 + 1 / min_distance``. A chapter
in which no term occurs scores exactly ``0``.

The weights are heuristics and are kept as they are; changing them
changes the ranking users see.
"""

from __future__ import annotations

import math
import re
from itertools import combinations
from typing import Dict, List, Sequence, Tuple

from .excerpts import MAX_OCCURRENCES, ExcerptExtractor
from .models import ScoredText

# Hits closer than this (in characters) end up in the same excerpt.
EXCERPT_DISTANCE = 200

PARAGRAPH_DELIMITER = "\n\n"

# Queries with at least this many terms have their stop words removed.
STOP_WORD_THRESHOLD = 3

STOP_WORDS = frozenset({
    "a", "an", "and", "at", "be", "by", "did", "do", "does", "for",
    "go", "goes", "if", "in", "is", "it", "the", "to", "that", "was",
    "what", "then", "than", "not", "ok", "from", "isn't", "has",
    "have", "get",
})


def filter_stop_words(terms: Sequence[str]) -> List[str]:
    """Drop stop words, but only from queries of ``STOP_WORD_THRESHOLD`` terms or more.

    A short query made of a common word is taken to be intentional.
    """
    if len(terms) < STOP_WORD_THRESHOLD:
        return list(terms)
    return [term for term in terms if term.lower() not in STOP_WORDS]


def _unique_terms(terms: Sequence[str], case_sensitive: bool) -> List[str]:
    seen = set()
    unique = []
    for term in terms:
        key = term if case_sensitive else term.lower()
        if term and key not in seen:
            seen.add(key)
            unique.append(term)
    return unique


def find_offsets(text: str, term: str, case_sensitive: bool = False,
                 limit: int = MAX_OCCURRENCES) -> Tuple[List[int], int]:
    """Locate ``term`` in ``text`` as a literal string.

    Returns the first ``limit`` match offsets, ascending, and the total
    number of (non-overlapping) matches.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    pattern = re.compile(re.escape(term), flags)
    offsets: List[int] = []
    count = 0
    for match in pattern.finditer(text):
        if count < limit:
            offsets.append(match.start())
        count += 1
    return offsets, count


def frequency_multiplier(term_length: int, occurrences: int, text_length: int) -> float:
    """``1 + sqrt(term_length * occurrences / text_length)``; exactly 1 when nothing matched."""
    if occurrences <= 0 or text_length <= 0:
        return 1.0
    return 1.0 + math.sqrt(term_length * occurrences / text_length)


def min_difference(first: Sequence[int], second: Sequence[int]) -> float:
    """Smallest ``|a - b|`` for ``a`` in ``first``, ``b`` in ``second``; both sorted.

    Returns ``math.inf`` if either sequence is empty.
    """
    i = j = 0
    best = math.inf
    while i < len(first) and j < len(second):
        a, b = first[i], second[j]
        best = min(best, abs(a - b))
        if a > b:
            j += 1
        else:
            i += 1
    return best


def proximity_multiplier(offset_lists: Sequence[Sequence[int]]) -> float:
    """Product of ``1 + 1/min_diff`` over every pair of terms that occur apart."""
    multiplier = 1.0
    for first, second in combinations(offset_lists, 2):
        diff = min_difference(first, second)
        if 0 < diff < math.inf:
            multiplier *= 1.0 + 1.0 / diff
    return multiplier


def score_text(text: str, terms: Sequence[str], *, case_sensitive: bool = False,
               distance: int = EXCERPT_DISTANCE, delimiter: str = PARAGRAPH_DELIMITER,
               max_occurrences: int = MAX_OCCURRENCES) -> ScoredText:
    """Score ``text`` against ``terms`` and collect excerpts around the hits."""
    words = _unique_terms(filter_stop_words(terms), case_sensitive)

    hits: Dict[str, List[int]] = {}
    counts: Dict[str, int] = {}
    for word in words:
        hits[word], counts[word] = find_offsets(text, word, case_sensitive, max_occurrences)

    num_matches = sum(1 for word in words if counts[word] > 0)
    if num_matches == 0:
        return ScoredText(0.0, ())

    score = float(num_matches)
    for word in words:
        score *= frequency_multiplier(len(word), counts[word], len(text))
    score *= proximity_multiplier(list(hits.values()))

    pooled = [offset for offsets in hits.values() for offset in offsets]
    extractor = ExcerptExtractor(text, pooled, distance, delimiter, max_occurrences)
    return ScoredText(score, tuple(extractor.get_excerpts()))
