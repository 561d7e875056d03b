"""On-disk chapter cache.

Each chapter lives in its own file named after its zero-based index
(``0.txt``, ``1.txt`` ...). The first line of a file is the chapter
name, the second its URL, and everything after the second newline is
the chapter text, verbatim. Only those first two newlines are
structural; the text may contain any number of its own.

Files are written to a temporary name in the same directory and then
renamed over the target, so a reader never sees a half-written
chapter. Newline translation is disabled in both directions so the
text round-trips exactly.
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Iterable, List, Tuple

from .models import ChapterRecord

CHAPTER_EXTENSION = ".txt"

_CHAPTER_FILE = re.compile(r"^(\d+)" + re.escape(CHAPTER_EXTENSION) + r"$")


def format_chapter(name: str, url: str, text: str) -> str:
    """Serialize one chapter into the cache file format."""
    if any(ch in field for field in (name, url) for ch in "\r\n"):
        raise ValueError("Chapter name and URL must be single lines")
    return f"{name}\n{url}\n{text}"


def parse_chapter(content: str) -> Tuple[str, str, str]:
    """Split cache file content into ``(name, url, text)``.

    A file missing its URL line or text yields empty strings for the
    missing fields.
    """
    parts = content.split("\n", 2)
    while len(parts) < 3:
        parts.append("")
    name, url, text = parts
    return name, url, text


class ChapterStore:
    """Reads and writes chapter files under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path(self, index: int) -> Path:
        if index < 0:
            raise ValueError(f"Chapter index must be non-negative, got {index}")
        return self.root / f"{index}{CHAPTER_EXTENSION}"

    def exists(self, index: int) -> bool:
        return self.path(index).is_file()

    def indices(self) -> List[int]:
        """Return the indices of all chapter files, ascending."""
        if not self.root.is_dir():
            return []
        found = []
        for entry in os.scandir(self.root):
            match = _CHAPTER_FILE.match(entry.name)
            if match and entry.is_file():
                found.append(int(match.group(1)))
        return sorted(found)

    def count(self) -> int:
        """Number of chapter slots on disk: the highest stored index plus one."""
        indices = self.indices()
        return indices[-1] + 1 if indices else 0

    def write(self, record: ChapterRecord) -> None:
        content = format_chapter(record.name, record.url, record.text)
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path(record.index)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{record.index}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def write_many(self, records: Iterable[ChapterRecord]) -> None:
        """Write ``records`` one after another in the order given."""
        for record in records:
            self.write(record)

    def read(self, index: int) -> ChapterRecord:
        """Read a chapter. Raises ``OSError`` if its file is missing or unreadable."""
        with open(self.path(index), "r", encoding="utf-8", newline="") as f:
            name, url, text = parse_chapter(f.read())
        return ChapterRecord(index, name, url, text)

    def read_identity(self, index: int) -> Tuple[str, str]:
        """Read only the ``(name, url)`` header lines of a chapter file."""
        with open(self.path(index), "r", encoding="utf-8", newline="") as f:
            name = f.readline().rstrip("\n")
            url = f.readline().rstrip("\n")
        return name, url

    def prune(self, keep: int) -> List[int]:
        """Delete chapter files with an index ``>= keep``; return the removed indices."""
        removed = [index for index in self.indices() if index >= keep]
        for index in removed:
            self.path(index).unlink()
        return removed
