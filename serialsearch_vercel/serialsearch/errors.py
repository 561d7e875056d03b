"""Exception types raised by the search service.

Per-chapter crawl problems never surface as exceptions; the crawler logs
them and stores an empty chapter instead. Everything defined here is
something a caller (usually the HTTP layer) is expected to handle.
"""

from __future__ import annotations

from typing import Optional, Tuple


class SerialSearchError(Exception):
    """Base class for all service errors."""


class FetchError(SerialSearchError):
    """A remote page the current operation depends on could not be fetched."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        message = f"Failed to fetch {url}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


# The table of contents is the only page whose failure is fatal to a crawl.
TableOfContentsFetchError = FetchError


class ParseError(FetchError):
    """A fetched page did not have the expected HTML shape."""


class ReconciliationError(SerialSearchError):
    """A chapter that is already cached changed identity on the remote site.

    ``expected`` is the cached ``(name, url)`` and ``observed`` is what the
    table of contents now lists at the same index (``None`` when the index
    disappeared). The cache can no longer be patched incrementally; a full
    reset is required.
    """

    def __init__(self, index: int, expected: Tuple[str, str],
                 observed: Optional[Tuple[str, str]]) -> None:
        self.index = index
        self.expected = expected
        self.observed = observed
        if observed is None:
            detail = "missing from the table of contents"
        else:
            detail = f"now {observed[0]!r} at {observed[1]!r}"
        super().__init__(
            f"Chapter {index} was {expected[0]!r} at {expected[1]!r}, {detail}; "
            "a full reset is required"
        )


class MissingIndexError(SerialSearchError, IndexError):
    """A chapter index outside the known table of contents was requested."""

    def __init__(self, index: int, known: int) -> None:
        self.index = index
        self.known = known
        super().__init__(f"Chapter index {index} is out of range (known chapters: {known})")


class QueryTooLargeError(SerialSearchError, ValueError):
    """The raw query string exceeds the configured length cap."""

    def __init__(self, length: int, limit: int) -> None:
        self.length = length
        self.limit = limit
        super().__init__(f"Query of {length} characters exceeds the limit of {limit}")


class InventoryBusyError(SerialSearchError):
    """The chapter cache is being rewritten and cannot serve the request."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Chapter inventory is busy ({state})")
