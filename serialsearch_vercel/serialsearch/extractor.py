"""Web page fetching and chapter text extraction.

This module fetches pages from the remote site and turns them into the
plain text the rest of the service works with. It uses ``httpx`` for
HTTP requests and ``BeautifulSoup`` (with the ``lxml`` parser) for
parsing. Two kinds of page are understood:

* the table of contents, from which the ordered list of chapter links
  is read (``parse_table_of_contents``);
* a chapter page, whose paragraphs are joined into a single string with
  the paragraph delimiter between them (``extract_chapter_text``).

Sanitization is a separate stage (``sanitize_content`` followed by
``normalize_punctuation``) so it can be tested on its own: images and
navigation links are removed, all other links are unwrapped to their
text, and typographic quotes and ellipses are converted to ASCII.

Fetch helpers never raise for a single chapter. A chapter that cannot be
fetched or parsed is logged and comes back as an empty string; only the
table of contents is fatal to a crawl.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable, List, Optional

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from .errors import FetchError, ParseError
from .models import ChapterLink

logger = logging.getLogger("serialsearch.extractor")

PARAGRAPH_DELIMITER = "\n\n"

# Chapters longer than this (in characters) are truncated.
MAX_CHAPTER_SIZE = 1_500_000

# Default user agent for HTTP requests. Some sites require a user agent to
# return full content instead of a 403 or truncated response.
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/90.0.4430.212 Safari/537.36"
    )
}

# Links on the table of contents page that are not chapters.
IGNORED_PATHS = ("/vol-1-archive", "/contacts/")

# Containers that hold the readable part of a page, in order of preference.
CONTENT_CLASSES = ("entry-content", "chapter-content", "post-content")

# Link labels of the previous/next buttons around each chapter.
NAV_LINK_TEXT = frozenset({
    "previous chapter",
    "next chapter",
    "previous",
    "next",
    "table of contents",
})

_PUNCTUATION = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u2026": "...",
    "\u00a0": " ",
})

_WHITESPACE = re.compile(r"\s+")


def make_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Return an ``httpx.AsyncClient`` configured for crawling."""
    return httpx.AsyncClient(timeout=timeout, headers=DEFAULT_HEADERS, follow_redirects=True)


async def fetch_html(url: str, client: Optional[httpx.AsyncClient] = None,
                     max_retries: int = 3, backoff: float = 1.0) -> Optional[str]:
    """Fetch the HTML content from ``url`` with retry logic.

    If all attempts fail the function returns ``None`` instead of
    raising. When no ``client`` is given a short-lived one is created
    for this request.
    """
    if client is None:
        async with make_client() as own_client:
            return await fetch_html(url, own_client, max_retries, backoff)
    for attempt in range(max_retries):
        try:
            response = await client.get(url)
            if response.status_code == 200:
                return response.text
            if response.status_code == 429:
                logger.warning("Rate limited fetching %s (attempt %d)", url, attempt + 1)
            else:
                logger.warning("Fetching %s returned HTTP %d", url, response.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Fetching %s failed: %s", url, exc)
        if attempt + 1 < max_retries:
            await asyncio.sleep(backoff * (2 ** attempt))
    return None


def normalize_punctuation(text: str) -> str:
    """Replace typographic quotes, ellipses and non-breaking spaces with ASCII."""
    return text.translate(_PUNCTUATION)


def clean_inline_text(text: str) -> str:
    """Normalize punctuation and collapse all whitespace to single spaces."""
    return _WHITESPACE.sub(" ", normalize_punctuation(text)).strip()


def sanitize_content(container: Tag) -> Tag:
    """Strip images and navigation links from ``container`` in place.

    Any other ``<a>`` is unwrapped so its text stays in the paragraph
    without the link markup. Line breaks become spaces. The same tag is
    returned for convenience.
    """
    for img in container.find_all("img"):
        img.decompose()
    for link in container.find_all("a"):
        label = clean_inline_text(link.get_text(" ")).lower()
        if label in NAV_LINK_TEXT:
            link.decompose()
        else:
            link.unwrap()
    for br in container.find_all("br"):
        br.replace_with(" ")
    return container


def _find_content(soup: BeautifulSoup) -> Optional[Tag]:
    for class_name in CONTENT_CLASSES:
        div = soup.find("div", class_=class_name)
        if div is not None:
            return div
    return None


def extract_chapter_text(html_doc: str, delimiter: str = PARAGRAPH_DELIMITER,
                         source: str = "") -> str:
    """Return the chapter text of ``html_doc`` as delimited paragraphs.

    Paragraphs are the ``<p>`` elements of the page's content container.
    Raises ``ParseError`` if the page has no content container.
    """
    soup = BeautifulSoup(html_doc, "lxml")
    content = _find_content(soup)
    if content is None:
        raise ParseError(source or "<html>", "no chapter content container")
    sanitize_content(content)
    paragraphs: List[str] = []
    for p in content.find_all("p"):
        text = clean_inline_text(p.get_text())
        if text:
            paragraphs.append(text)
    text = delimiter.join(paragraphs)
    if len(text) > MAX_CHAPTER_SIZE:
        text = text[:MAX_CHAPTER_SIZE]
    return text


def _site_path(href: str, base: httpx.URL) -> Optional[str]:
    """Return ``href`` as a path on ``base``'s host, or ``None`` if it is off-site."""
    if not href or href.startswith("#"):
        return None
    try:
        target = base.join(href)
    except httpx.InvalidURL:
        return None
    if target.host != base.host:
        return None
    path = target.raw_path.decode("ascii")
    if path in ("", "/"):
        return None
    return path


def parse_table_of_contents(html_doc: str, base_url: str,
                            ignored: Iterable[str] = IGNORED_PATHS,
                            source: str = "") -> List[ChapterLink]:
    """Read the ordered chapter links from a table of contents page.

    Only anchors inside the page's content region are considered, and
    only those pointing at the site itself. Links listed in ``ignored``
    are skipped, as are repeated URLs (the first occurrence wins).
    Raises ``ParseError`` if no chapter link is found.
    """
    soup = BeautifulSoup(html_doc, "lxml")
    region = _find_content(soup) or soup.find("article") or soup.body
    if region is None:
        raise ParseError(source or base_url, "empty table of contents page")
    base = httpx.URL(base_url)
    skip = {path.rstrip("/") for path in ignored}
    seen: set[str] = set()
    links: List[ChapterLink] = []
    for a in region.find_all("a", href=True):
        name = clean_inline_text(a.get_text(" "))
        if not name:
            continue
        path = _site_path(a["href"], base)
        if path is None or path.rstrip("/") in skip or path in seen:
            continue
        seen.add(path)
        links.append(ChapterLink(name, path))
    if not links:
        raise ParseError(source or base_url, "no chapter links in table of contents")
    return links


def chapter_url(base_url: str, path: str) -> str:
    """Join a site-relative chapter path onto ``base_url``."""
    return str(httpx.URL(base_url).join(path))


async def fetch_table_of_contents(client: httpx.AsyncClient, toc_url: str, base_url: str,
                                  max_retries: int = 1) -> List[ChapterLink]:
    """Fetch and parse the table of contents. Raises ``FetchError`` on failure."""
    html_doc = await fetch_html(toc_url, client, max_retries=max_retries)
    if html_doc is None:
        raise FetchError(toc_url, "table of contents unavailable")
    links = parse_table_of_contents(html_doc, base_url, source=toc_url)
    logger.info("Table of contents lists %d chapters", len(links))
    return links


async def fetch_chapter_text(client: httpx.AsyncClient, url: str, max_retries: int = 1,
                             delimiter: str = PARAGRAPH_DELIMITER) -> str:
    """Fetch one chapter and return its text, or ``""`` if that fails."""
    html_doc = await fetch_html(url, client, max_retries=max_retries)
    if html_doc is None:
        logger.warning("Storing empty text for %s: fetch failed", url)
        return ""
    try:
        return extract_chapter_text(html_doc, delimiter, source=url)
    except ParseError as exc:
        logger.warning("Storing empty text for %s: %s", url, exc)
        return ""
