"""Configuration for the search service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_TOC_URL = "https://wanderinginn.com/table-of-contents/"
DEFAULT_BASE_URL = "https://wanderinginn.com"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """
    Everything the crawler, the scorer and the HTTP app need.

    Fields left as ``None`` are filled from the environment in
    ``__post_init__``. Every field is overridable at construction for
    testing.
    """

    data_dir: Optional[Path] = None
    toc_url: Optional[str] = None
    base_url: Optional[str] = None

    crawl_batch_size: Optional[int] = None
    crawl_pause_seconds: Optional[float] = None
    fetch_retries: Optional[int] = None
    fetch_timeout_seconds: float = 30.0

    search_batch_size: int = 150
    max_query_length: int = 200
    query_separator: str = ","
    excerpt_distance: int = 200
    max_occurrences: int = 250
    paragraph_delimiter: str = "\n\n"
    text_cache_size: int = 300

    admin_password: Optional[str] = None
    crawl_on_startup: Optional[bool] = None
    log_level: Optional[str] = None

    def __post_init__(self):
        project_root = Path(__file__).resolve().parent.parent

        if self.data_dir is None:
            env_data = os.environ.get("SERIALSEARCH_DATA")
            self.data_dir = Path(env_data) if env_data else project_root / "data"
        self.data_dir = Path(self.data_dir)

        if self.toc_url is None:
            self.toc_url = os.environ.get("SERIALSEARCH_TOC_URL", DEFAULT_TOC_URL)
        if self.base_url is None:
            self.base_url = os.environ.get("SERIALSEARCH_BASE_URL", DEFAULT_BASE_URL)
        self.base_url = self.base_url.rstrip("/")

        if self.crawl_batch_size is None:
            self.crawl_batch_size = _env_int("CRAWL_BATCH_SIZE", 8)
        if self.crawl_pause_seconds is None:
            self.crawl_pause_seconds = _env_float("CRAWL_PAUSE_SECONDS", 60.0)
        if self.fetch_retries is None:
            self.fetch_retries = _env_int("FETCH_RETRIES", 1)
        self.crawl_batch_size = max(1, self.crawl_batch_size)
        self.fetch_retries = max(1, self.fetch_retries)

        if self.admin_password is None:
            self.admin_password = os.environ.get("ADMIN_PASSWORD") or None
        if self.crawl_on_startup is None:
            self.crawl_on_startup = _env_flag("CRAWL_ON_STARTUP")
        if self.log_level is None:
            self.log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
