"""Full-text chapter search for a serialized web novel.

This package implements a FastAPI based service that crawls the chapters
of a web serial from its table of contents, caches them on disk as plain
text, and answers keyword searches with per-chapter relevance scores and
paragraph excerpts around every hit.

The modules in this package are:

* ``extractor.py`` – Fetching pages with ``httpx`` and turning them into
  plain text with ``BeautifulSoup``: the table of contents becomes an
  ordered list of chapter links, a chapter page becomes its paragraphs
  joined by a blank line. Navigation buttons, images and link markup are
  stripped and typographic punctuation is normalized.

* ``store.py`` – The on-disk cache, one ``<index>.txt`` file per chapter
  holding its name, URL and text.

* ``inventory.py`` – The owner of the cache. It runs full crawls
  (``reset``), incremental crawls that first check nothing already cached
  has changed (``update``), single-chapter repairs (``write_chapter``),
  and serves chapters to the search code, fetching any that are missing.

* ``score.py`` and ``excerpts.py`` – Scoring a chapter's text against a
  list of terms, and cutting paragraph-aligned excerpts around the hits.

* ``search.py`` – Scanning the whole corpus for a query, batch by batch.

* ``main.py`` – The FastAPI application: search, status and the
  password protected administrative routes.

There is no persistent search index; every query scans every chapter.
"""
