from datetime import datetime, timezone
from pathlib import Path

import pytest

from histfetch.workflows.bundle_store import BundleStore
from histfetch.workflows.fetcher_config import DataPaths
from histfetch.workflows.history import HistoryItem, save_history
from histfetch.workflows.indexer import decide_title, index_contents
from histfetch.workflows.search import format_hits, search
from histfetch.workflows.web_fetch import Failure, FetchResult, Success

VISIT = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "history_title, extracted, expected",
    [
        ("Browser", "Page", "Browser, Page"),
        ("Same", "Same", "Same"),
        ("Browser", None, "Browser"),
        (None, "Page", "Page"),
        (None, None, None),
    ],
)
def test_decide_title(history_title, extracted, expected) -> None:
    item = HistoryItem("https://a/", history_title)
    assert decide_title(item, extracted) == expected


def test_decide_title_without_history_item() -> None:
    assert decide_title(None, "Page") == "Page"


def _seed(tmp_path: Path) -> DataPaths:
    paths = DataPaths.from_dir(tmp_path)
    save_history(
        paths.history,
        [
            HistoryItem("https://python.example/", "Python docs", VISIT),
            HistoryItem("https://cats.example/", None, None),
        ],
    )
    store = BundleStore(paths.raw_pages_dir)
    store.write_bundle(
        [
            FetchResult(
                "https://python.example/",
                Success("<html><title>Tutorial</title><body><p>Generators and iterators explained</p></body></html>"),
            ),
            FetchResult("https://broken.example/", Failure("timeout")),
        ]
    )
    store.write_bundle(
        [FetchResult("https://cats.example/", Success("<html><body><p>Cats sleeping in the sun</p></body></html>"))]
    )
    return paths


def test_index_then_search(tmp_path: Path) -> None:
    paths = _seed(tmp_path)

    summary = index_contents(paths)

    assert (summary.bundles, summary.pages_seen, summary.pages_indexed) == (2, 3, 2)

    hits = search(paths, "generators")
    assert [hit.url for hit in hits] == ["https://python.example/"]
    assert hits[0].title == "Python docs, Tutorial"
    assert hits[0].last_visit == VISIT
    assert "Generators" in hits[0].snippet

    cats = search(paths, "sleeping")
    assert [hit.url for hit in cats] == ["https://cats.example/"]
    assert cats[0].last_visit is None

    assert search(paths, "timeout") == []

    text = format_hits(hits)
    assert text.startswith("1. https://python.example/")
    assert "Title: Python docs, Tutorial" in text


def test_reindex_replaces_previous_index(tmp_path: Path) -> None:
    paths = _seed(tmp_path)
    index_contents(paths)
    index_contents(paths)

    assert len(search(paths, "sleeping")) == 1


def test_search_requires_index(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        search(DataPaths.from_dir(tmp_path), "anything")


def test_search_rejects_blank_query(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        search(DataPaths.from_dir(tmp_path), "   ")


def test_content_terms_tolerate_one_typo(tmp_path: Path) -> None:
    paths = _seed(tmp_path)
    index_contents(paths)

    assert [hit.url for hit in search(paths, "sum")] == ["https://cats.example/"]
    assert search(paths, "suxxn") == []
