"""Shared fixtures: a fake remote site served through ``httpx.MockTransport``."""

import httpx
import pytest

from serialsearch.config import Settings
from serialsearch.inventory import Inventory

BASE_URL = "https://serial.example"
TOC_PATH = "/table-of-contents/"
TOC_URL = BASE_URL + TOC_PATH


def toc_html(chapters):
    links = "".join(f'<p><a href="{url}">{name}</a></p>' for name, url, _ in chapters)
    return (
        "<html><head><title>Table of Contents</title></head><body>"
        '<nav><a href="/about/">About the Author</a></nav>'
        '<div class="entry-content">'
        f"{links}"
        '<p><a href="/vol-1-archive">Volume 1 Archive</a></p>'
        '<p><a href="/contacts/">Contacts</a></p>'
        "</div></body></html>"
    )


def chapter_html(paragraphs):
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return (
        "<html><body><h1>Chapter</h1>"
        '<div class="entry-content">'
        '<p><a href="/prev/">Previous Chapter</a> <a href="/next/">Next Chapter</a></p>'
        f"{body}"
        '<p><a href="/next/">Next Chapter</a></p>'
        "</div></body></html>"
    )


class FakeSite:
    """A table of contents plus one page per chapter, with switchable failures."""

    def __init__(self, chapters):
        # (name, path, paragraphs)
        self.chapters = list(chapters)
        self.requests = []
        self.failing = set()
        self.toc_status = 200

    def handler(self, request):
        path = request.url.raw_path.decode("ascii")
        self.requests.append(path)
        if path == TOC_PATH:
            if self.toc_status != 200:
                return httpx.Response(self.toc_status)
            return httpx.Response(200, text=toc_html(self.chapters))
        if path in self.failing:
            return httpx.Response(500)
        for _, url, paragraphs in self.chapters:
            if url == path:
                return httpx.Response(200, text=chapter_html(paragraphs))
        return httpx.Response(404)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def chapter_requests(self):
        return [path for path in self.requests if path != TOC_PATH]


def sample_chapters(count=5):
    return [
        (f"Chapter {i + 1}", f"/chapter-{i + 1}/", [f"Paragraph one of chapter {i + 1}.",
                                                    f"Paragraph two of chapter {i + 1}."])
        for i in range(count)
    ]


def make_settings(data_dir, **overrides):
    values = dict(
        data_dir=data_dir,
        toc_url=TOC_URL,
        base_url=BASE_URL,
        crawl_batch_size=2,
        crawl_pause_seconds=0.0,
        fetch_retries=1,
        admin_password="hunter2",
        crawl_on_startup=False,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def site():
    return FakeSite(sample_chapters())


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path / "data")


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def inventory(settings, site, sleeper):
    return Inventory(settings, client_factory=site.client, sleep=sleeper)
