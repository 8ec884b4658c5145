from pathlib import Path

import pytest

from histfetch.workflows.bundle_store import BundleReadError, BundleStore
from histfetch.workflows.completion import scan_completed_urls
from histfetch.workflows.web_fetch import Failure, FetchResult, Success


def test_scan_empty_store(tmp_path: Path) -> None:
    assert scan_completed_urls(BundleStore(tmp_path)) == set()


def test_scan_unions_success_and_failure_urls(tmp_path: Path) -> None:
    store = BundleStore(tmp_path)
    store.write_bundle([FetchResult("https://a/", Success("<p>a</p>")), FetchResult("https://b/", Failure("timeout"))])
    store.write_bundle([FetchResult("https://c/", Success("<p>c</p>")), FetchResult("https://a/", Success("<p>a</p>"))])

    assert scan_completed_urls(store, max_workers=2) == {"https://a/", "https://b/", "https://c/"}


def test_scan_aborts_on_corrupt_bundle(tmp_path: Path) -> None:
    store = BundleStore(tmp_path)
    store.write_bundle([FetchResult("https://a/", Success("<p>a</p>"))])
    (tmp_path / "999").write_bytes(b"\x00\x01garbage")

    with pytest.raises(BundleReadError):
        scan_completed_urls(store)
