"""Chapter inventory: the crawl, reconcile and cache lifecycle.

An ``Inventory`` is the single owner of the on-disk chapter cache. It
knows how many chapters there are, rebuilds the cache from the remote
table of contents (``reset``), appends newly published chapters after
checking that the cached ones are unchanged (``update``), re-fetches a
single chapter (``write_chapter``) and serves ranges of chapters to the
search code (``load_chapters``).

Only one operation may write to the cache at a time. The inventory
moves from ``IDLE`` to ``RESETTING``, ``UPDATING`` or ``PATCHING`` for the
duration of a write and back to ``IDLE`` when it finishes, whether or not
it succeeded. Starting a second write, or reading, while not ``IDLE``
raises ``InventoryBusyError`` instead of waiting.

Chapters are fetched in batches with a pause in between so the remote
site does not start answering with HTTP 429. A chapter that cannot be
fetched is stored with empty text; the crawl carries on.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import httpx

from . import extractor
from .config import Settings
from .errors import FetchError, InventoryBusyError, MissingIndexError, ReconciliationError
from .models import ChapterLink, ChapterRecord
from .store import ChapterStore

logger = logging.getLogger("serialsearch.inventory")

ClientFactory = Callable[[], httpx.AsyncClient]
Sleep = Callable[[float], Awaitable[None]]


class InventoryState(str, Enum):
    IDLE = "idle"
    RESETTING = "resetting"
    UPDATING = "updating"
    PATCHING = "patching"


@dataclass(frozen=True)
class CrawlProgress:
    """Running totals of a crawl, replaced after every batch."""

    total: int
    batches: int = 0
    written: int = 0
    failed: Tuple[int, ...] = ()

    def advance(self, records: Sequence[ChapterRecord]) -> "CrawlProgress":
        return replace(
            self,
            batches=self.batches + 1,
            written=self.written + len(records),
            failed=self.failed + tuple(r.index for r in records if not r.text),
        )


class Inventory:
    """Owns the chapter cache under ``settings.data_dir``.

    ``client_factory`` builds the ``httpx.AsyncClient`` used for one
    operation and ``sleep`` implements the pause between crawl batches;
    both exist so tests can run without network access or wall-clock
    waits.
    """

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None,
                 sleep: Sleep = asyncio.sleep) -> None:
        self.settings = settings
        self.store = ChapterStore(settings.data_dir)
        self._client_factory = client_factory or (
            lambda: extractor.make_client(settings.fetch_timeout_seconds)
        )
        self._sleep = sleep
        self._state = InventoryState.IDLE
        self._links: Optional[List[ChapterLink]] = None
        self._texts: "OrderedDict[int, ChapterRecord]" = OrderedDict()
        self._num_chapters = self.store.count()
        self.last_error: Optional[str] = None

    @property
    def state(self) -> InventoryState:
        return self._state

    @property
    def num_chapters(self) -> int:
        return self._num_chapters

    @property
    def busy(self) -> bool:
        return self._state is not InventoryState.IDLE

    # lifecycle

    @contextmanager
    def _transition(self, state: InventoryState, track_errors: bool = True) -> Iterator[None]:
        if self.busy:
            raise InventoryBusyError(self._state.value)
        self._state = state
        logger.debug("Inventory %s", state.value)
        try:
            yield
        except Exception as exc:
            if track_errors:
                self.last_error = str(exc)
            raise
        else:
            if track_errors:
                self.last_error = None
        finally:
            self._num_chapters = self.store.count()
            self._state = InventoryState.IDLE

    # text cache

    def _remember(self, record: ChapterRecord) -> None:
        if self.settings.text_cache_size <= 0:
            return
        self._texts[record.index] = record
        self._texts.move_to_end(record.index)
        while len(self._texts) > self.settings.text_cache_size:
            self._texts.popitem(last=False)

    def _forget(self, indices) -> None:
        for index in indices:
            self._texts.pop(index, None)

    # remote

    async def _resolve_links(self, client: httpx.AsyncClient) -> List[ChapterLink]:
        self._links = await extractor.fetch_table_of_contents(
            client, self.settings.toc_url, self.settings.base_url,
            max_retries=self.settings.fetch_retries,
        )
        return self._links

    async def _known_links(self, client: httpx.AsyncClient) -> List[ChapterLink]:
        if self._links is None:
            return await self._resolve_links(client)
        return self._links

    async def _fetch_record(self, client: httpx.AsyncClient, index: int,
                            link: ChapterLink) -> ChapterRecord:
        try:
            text = await extractor.fetch_chapter_text(
                client,
                extractor.chapter_url(self.settings.base_url, link.url),
                max_retries=self.settings.fetch_retries,
                delimiter=self.settings.paragraph_delimiter,
            )
        except Exception as exc:
            # One bad chapter never aborts the batch it belongs to
            logger.warning("Storing empty text for chapter %d (%s): %s", index, link.url, exc)
            text = ""
        return ChapterRecord(index, link.name, link.url, text)

    async def _write_one(self, client: httpx.AsyncClient, links: List[ChapterLink],
                         index: int) -> ChapterRecord:
        if not 0 <= index < len(links):
            raise MissingIndexError(index, len(links))
        record = await self._fetch_record(client, index, links[index])
        await asyncio.to_thread(self.store.write, record)
        self._forget([index])
        return record

    async def _crawl(self, client: httpx.AsyncClient, links: List[ChapterLink],
                     start: int) -> CrawlProgress:
        """Fetch and write ``links[start:]`` batch by batch, in index order."""
        size = self.settings.crawl_batch_size
        progress = CrawlProgress(total=len(links) - start)
        for batch_start in range(start, len(links), size):
            if batch_start > start:
                logger.info("Pausing %.1fs before the next batch", self.settings.crawl_pause_seconds)
                await self._sleep(self.settings.crawl_pause_seconds)
            batch = links[batch_start:batch_start + size]
            records = await asyncio.gather(*(
                self._fetch_record(client, batch_start + offset, link)
                for offset, link in enumerate(batch)
            ))
            await asyncio.to_thread(self.store.write_many, records)
            self._forget(r.index for r in records)
            self._num_chapters = self.store.count()
            progress = progress.advance(records)
            logger.info("Wrote chapters %d-%d (%d/%d)", batch_start, batch_start + len(batch) - 1,
                        progress.written, progress.total)
        if progress.failed:
            logger.warning("%d chapters stored without text: %s", len(progress.failed),
                           list(progress.failed))
        return progress

    def _reconcile(self, links: List[ChapterLink], known: int) -> None:
        """Raise ``ReconciliationError`` if any cached chapter changed identity."""
        for index in range(known):
            if not self.store.exists(index):
                continue
            try:
                expected = self.store.read_identity(index)
            except OSError as exc:
                logger.warning("Cannot read cached chapter %d: %s", index, exc)
                continue
            observed = tuple(links[index]) if index < len(links) else None
            if observed != expected:
                raise ReconciliationError(index, expected, observed)

    # operations

    async def reset(self) -> CrawlProgress:
        """Rebuild the whole cache from the remote table of contents."""
        with self._transition(InventoryState.RESETTING):
            async with self._client_factory() as client:
                links = await self._resolve_links(client)
                removed = await asyncio.to_thread(self.store.prune, len(links))
                if removed:
                    logger.info("Removed %d chapters no longer listed", len(removed))
                self._texts.clear()
                progress = await self._crawl(client, links, 0)
        logger.info("Reset complete: %d chapters", self._num_chapters)
        return progress

    async def update(self) -> CrawlProgress:
        """Append chapters published since the last crawl.

        Every chapter already cached must still be listed under the same
        name and URL at the same index; otherwise ``ReconciliationError``
        is raised and nothing is written.
        """
        with self._transition(InventoryState.UPDATING):
            async with self._client_factory() as client:
                links = await self._resolve_links(client)
                known = self._num_chapters
                await asyncio.to_thread(self._reconcile, links, known)
                if len(links) <= known:
                    logger.info("No new chapters (%d known)", known)
                    return CrawlProgress(total=0)
                progress = await self._crawl(client, links, known)
        logger.info("Update complete: %d new chapters", progress.written)
        return progress

    async def write_chapter(self, index: int) -> ChapterRecord:
        """Re-fetch and rewrite one chapter, e.g. to fill in a failed fetch."""
        with self._transition(InventoryState.PATCHING):
            async with self._client_factory() as client:
                links = await self._known_links(client)
                record = await self._write_one(client, links, index)
        logger.info("Rewrote chapter %d (%s)", index, record.name)
        return record

    patch_chapter = write_chapter

    async def _restore(self, missing: List[int]) -> None:
        """Fetch chapters whose files are missing. Failures are logged, never raised."""
        with self._transition(InventoryState.PATCHING, track_errors=False):
            async with self._client_factory() as client:
                try:
                    links = await self._known_links(client)
                except FetchError as exc:
                    logger.warning("Cannot restore chapters %s: %s", missing, exc)
                    return
                for index in missing:
                    try:
                        await self._write_one(client, links, index)
                    except (MissingIndexError, OSError) as exc:
                        logger.warning("Cannot restore chapter %d: %s", index, exc)

    def _read_many(self, indices: List[int]) -> Tuple[Dict[int, ChapterRecord], List[int]]:
        records: Dict[int, ChapterRecord] = {}
        failed: List[int] = []
        for index in indices:
            try:
                records[index] = self.store.read(index)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Cannot read chapter %d: %s", index, exc)
                failed.append(index)
                name, url = ("", "")
                if self._links is not None and index < len(self._links):
                    name, url = self._links[index]
                records[index] = ChapterRecord(index, name, url, "")
        return records, failed

    async def load_chapters(self, start: int, count: int) -> List[ChapterRecord]:
        """Return chapters ``start`` up to ``start + count`` (clipped to ``num_chapters``).

        Chapters missing from disk are fetched first. A chapter that can
        be neither read nor fetched comes back with empty text.
        """
        if self.busy:
            raise InventoryBusyError(self._state.value)
        indices = list(range(max(start, 0), min(start + count, self._num_chapters)))
        records: Dict[int, ChapterRecord] = {}
        for index in indices:
            cached = self._texts.get(index)
            if cached is not None:
                self._texts.move_to_end(index)
                records[index] = cached
        uncached = [index for index in indices if index not in records]
        missing = [index for index in uncached if not self.store.exists(index)]
        if missing:
            await self._restore(missing)
        loaded, failed = await asyncio.to_thread(self._read_many, uncached)
        for index, record in loaded.items():
            if index not in failed:
                self._remember(record)
        records.update(loaded)
        return [records[index] for index in indices]
