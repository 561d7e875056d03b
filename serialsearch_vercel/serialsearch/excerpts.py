"""Paragraph-aligned excerpts around keyword hits.

``ExcerptExtractor`` takes a chapter's text and the character offsets
of keyword hits and produces a list of excerpts. An excerpt is a run of
consecutive paragraphs, each wrapped in ``<p>`` tags, that contains one
cluster of nearby hits.

Clusters are built greedily from left to right: starting at the first
unused offset, the next offset joins the cluster while it lies within
``distance`` characters of the previous one. The cluster is then widened
to whole paragraphs, and every offset that falls inside the widened
range is marked as used, so excerpts never overlap.
"""

from __future__ import annotations

import html
from typing import Iterable, List, Optional, Tuple

# Cap on the offsets considered (and hence excerpts produced) per chapter,
# so very common terms cannot blow up memory or response size.
MAX_OCCURRENCES = 250


def format_paragraphs(chunk: str, delimiter: str, escape: bool = True) -> str:
    """Wrap each delimited paragraph of ``chunk`` in ``<p>`` tags."""
    parts = chunk.split(delimiter)
    if escape:
        parts = [html.escape(part, quote=False) for part in parts]
    return "".join(f"<p>{part}</p>" for part in parts)


class ExcerptExtractor:
    """Builds excerpts of ``text`` around the hit ``offsets``.

    Offsets need not be sorted. Only the first ``max_occurrences`` of
    them (in text order) are considered. ``get_excerpts`` computes the
    result once and returns a fresh copy of it on every call.
    """

    def __init__(self, text: str, offsets: Iterable[int], distance: int, delimiter: str,
                 max_occurrences: int = MAX_OCCURRENCES, escape: bool = True) -> None:
        if not delimiter:
            raise ValueError("Paragraph delimiter must be non-empty")
        self.text = text
        self.offsets = sorted(offsets)[:max(0, max_occurrences)]
        self.distance = distance
        self.delimiter = delimiter
        self.escape = escape
        self._spans: Optional[List[Tuple[int, int]]] = None
        self._excerpts: List[str] = []

    def _paragraph_bounds(self, start: int, end: int, floor: int) -> Tuple[int, int]:
        """Return ``[left, right)`` covering the paragraphs that hold ``start`` and ``end``."""
        found = self.text.rfind(self.delimiter, 0, start)
        left = found + len(self.delimiter) if found != -1 else 0
        right = self.text.find(self.delimiter, end + 1)
        if right == -1:
            right = len(self.text)
        return max(left, floor), right

    def _consume(self, pos: int, floor: int) -> Tuple[int, int]:
        """Build one excerpt starting at ``self.offsets[pos]``.

        Returns the position of the first offset not covered by it and the
        end of the text range it covers.
        """
        offsets = self.offsets
        last = pos
        while last + 1 < len(offsets) and offsets[last + 1] <= offsets[last] + self.distance:
            last += 1
        left, right = self._paragraph_bounds(offsets[pos], offsets[last], floor)
        self._spans.append((left, right))
        self._excerpts.append(format_paragraphs(self.text[left:right], self.delimiter, self.escape))
        pos = last + 1
        # later hits already shown in the last paragraph
        while pos < len(offsets) and offsets[pos] < right:
            pos += 1
        return pos, right

    def _compute(self) -> None:
        """Walk the sorted offsets once, building spans and their excerpts."""
        self._spans = []
        pos = 0
        floor = 0
        while pos < len(self.offsets):
            pos, floor = self._consume(pos, floor)

    def get_excerpts(self) -> List[str]:
        """Return the excerpts in text order, computing them on first use."""
        if self._spans is None:
            self._compute()
        return list(self._excerpts)

    def get_spans(self) -> List[Tuple[int, int]]:
        """Return the ``[start, end)`` text range of each excerpt."""
        if self._spans is None:
            self._compute()
        return list(self._spans)
