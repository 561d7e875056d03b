"""Plain data types shared by the crawler, the scorer and the HTTP layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, NamedTuple, Tuple


class ChapterLink(NamedTuple):
    """One table-of-contents entry: display name and site-relative URL."""

    name: str
    url: str


@dataclass(frozen=True)
class ChapterRecord:
    """A cached chapter.

    ``index`` is the chapter's fixed position in the corpus. An empty
    ``text`` means the chapter has not been fetched or its fetch failed.
    """

    index: int
    name: str
    url: str
    text: str = ""

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.url)


@dataclass(frozen=True)
class ScoredText:
    score: float
    excerpts: Tuple[str, ...] = ()


@dataclass
class ChapterSearchResult:
    """Score and excerpts of one chapter for one query."""

    name: str
    url: str
    score: float
    excerpts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
