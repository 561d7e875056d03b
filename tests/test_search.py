"""Tests for the corpus-wide search."""

import asyncio

import pytest

from serialsearch.errors import InventoryBusyError, QueryTooLargeError
from serialsearch.inventory import Inventory, InventoryState
from serialsearch.models import ChapterRecord, ChapterSearchResult
from serialsearch.search import matching_results, parse_query, search
from serialsearch.store import ChapterStore

from conftest import make_settings


def _no_network():
    raise AssertionError("search should not touch the network")


def _corpus(tmp_path, texts, **overrides):
    settings = make_settings(tmp_path / "data", **overrides)
    ChapterStore(settings.data_dir).write_many(
        ChapterRecord(i, f"Chapter {i + 1}", f"/chapter-{i + 1}/", text)
        for i, text in enumerate(texts)
    )
    return Inventory(settings, client_factory=_no_network)


def test_parse_query_splits_on_commas():
    assert parse_query(" cat, fast ,, ") == ["cat", "fast"]
    assert parse_query("the cat sat") == ["the cat sat"]
    assert parse_query("") == []
    assert parse_query("a|b", separator="|") == ["a", "b"]


def test_end_to_end_ranking(tmp_path):
    inventory = _corpus(tmp_path, ["the cat sat", "the cat ran fast", "no match here"])

    results = asyncio.run(search(inventory, "cat,fast"))

    assert [r.name for r in results] == ["Chapter 1", "Chapter 2", "Chapter 3"]
    assert results[1].score > results[0].score > 0
    assert results[2].score == 0
    assert results[2].excerpts == []
    assert results[1].excerpts == ["<p>the cat ran fast</p>"]
    assert results[0].url == "/chapter-1/"


def test_batching_does_not_change_results(tmp_path):
    texts = [f"chapter {i} mentions the inn" + (" and a goblin" if i % 3 == 0 else "")
             for i in range(10)]
    batched = _corpus(tmp_path / "a", texts, search_batch_size=3)
    single = _corpus(tmp_path / "b", texts, search_batch_size=150)

    first = asyncio.run(search(batched, "goblin, inn"))
    second = asyncio.run(search(single, "goblin, inn"))

    assert [r.to_dict() for r in first] == [r.to_dict() for r in second]
    assert len(first) == 10


def test_query_length_cap(tmp_path):
    inventory = _corpus(tmp_path, ["text"])
    with pytest.raises(QueryTooLargeError) as excinfo:
        asyncio.run(search(inventory, "x" * 201))
    assert excinfo.value.limit == 200
    assert len(asyncio.run(search(inventory, "x" * 200))) == 1


def test_search_fails_fast_while_busy(tmp_path):
    inventory = _corpus(tmp_path, ["text"])
    inventory._state = InventoryState.UPDATING
    with pytest.raises(InventoryBusyError):
        asyncio.run(search(inventory, "text"))


def test_search_empty_corpus(tmp_path):
    inventory = _corpus(tmp_path, [])
    assert asyncio.run(search(inventory, "anything")) == []


def test_case_sensitive_search(tmp_path):
    inventory = _corpus(tmp_path, ["Erin smiled", "erin frowned"])
    results = asyncio.run(search(inventory, "Erin", case_sensitive=True))
    assert [r.score > 0 for r in results] == [True, False]


def test_matching_results_drops_zero_scores():
    results = [
        ChapterSearchResult("a", "/a/", 0.0),
        ChapterSearchResult("b", "/b/", 1.5, ["<p>b</p>"]),
    ]
    assert matching_results(results) == [results[1]]
