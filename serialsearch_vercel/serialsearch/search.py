"""Full-text search over the cached chapters.

There is no index: every search scans every chapter. Chapters are pulled
from the ``Inventory`` in fixed-size batches so only one batch of text
needs to be in memory at a time; batching does not change the results,
which always come back in chapter order, zero scores included. The HTTP
layer drops the zero-score entries with ``matching_results``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from .config import Settings
from .errors import InventoryBusyError, QueryTooLargeError
from .inventory import Inventory
from .models import ChapterRecord, ChapterSearchResult
from .score import score_text

logger = logging.getLogger("serialsearch.search")


def parse_query(raw_query: str, separator: str = ",") -> List[str]:
    """Split a raw query into its non-empty, whitespace-trimmed terms."""
    return [term.strip() for term in raw_query.split(separator) if term.strip()]


def check_query(raw_query: str, limit: int) -> None:
    """Raise ``QueryTooLargeError`` if ``raw_query`` is longer than ``limit``."""
    if len(raw_query) > limit:
        raise QueryTooLargeError(len(raw_query), limit)


def score_chapters(records: Sequence[ChapterRecord], terms: Sequence[str], settings: Settings,
                   case_sensitive: bool = False) -> List[ChapterSearchResult]:
    """Score a batch of chapters. Pure CPU work with no shared state."""
    results = []
    for record in records:
        scored = score_text(
            record.text,
            terms,
            case_sensitive=case_sensitive,
            distance=settings.excerpt_distance,
            delimiter=settings.paragraph_delimiter,
            max_occurrences=settings.max_occurrences,
        )
        results.append(ChapterSearchResult(record.name, record.url, scored.score, list(scored.excerpts)))
    return results


async def search(inventory: Inventory, raw_query: str, settings: Optional[Settings] = None,
                 case_sensitive: bool = False) -> List[ChapterSearchResult]:
    """Score every chapter against ``raw_query``.

    Raises ``QueryTooLargeError`` for oversized queries and
    ``InventoryBusyError`` while the cache is being rewritten.
    """
    settings = settings or inventory.settings
    check_query(raw_query, settings.max_query_length)
    if inventory.busy:
        raise InventoryBusyError(inventory.state.value)
    terms = parse_query(raw_query, settings.query_separator)
    total = inventory.num_chapters
    results: List[ChapterSearchResult] = []
    for start in range(0, total, settings.search_batch_size):
        records = await inventory.load_chapters(start, settings.search_batch_size)
        results.extend(await asyncio.to_thread(score_chapters, records, terms, settings, case_sensitive))
    logger.debug("Query %r (%d terms) scored %d chapters", raw_query, len(terms), len(results))
    return results


def matching_results(results: Iterable[ChapterSearchResult]) -> List[ChapterSearchResult]:
    """Keep only chapters in which at least one term occurred."""
    return [result for result in results if result.score > 0]
