import threading
import time
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from histfetch.workflows.web_fetch import (
    Failure,
    FetchConfig,
    FetchResult,
    PageFetcher,
    Success,
    fetch_page,
)


PAGE_HTML = "<html><title>Café</title><body><p>Crème brûlée</p></body></html>"
PLAIN_HTML = "<html><body><p>A page served without any declared charset.</p></body></html>"
DRIP_BODY = b"<p>dripping</p>\n"
LONG_LABEL_URL = "http://" + "a" * 70 + ".com/"


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):  # noqa: N802
        if self.path == "/page":
            self._reply(200, "text/html; charset=utf-8", PAGE_HTML.encode("utf-8"))
        elif self.path == "/plain":
            self._reply(200, "text/html", PLAIN_HTML.encode("ascii"))
        elif self.path == "/drip":
            self._drip(DRIP_BODY, delay=0.2)
        elif self.path == "/upper":
            self._reply(200, "TEXT/HTML", b"<p>loud</p>")
        elif self.path == "/json":
            self._reply(200, "application/json", b"{}")
        elif self.path == "/slow":
            time.sleep(1.0)
            self._reply(200, "text/html", b"<p>late</p>")
        else:
            self._reply(404, "text/html", b"<p>nope</p>")

    def _reply(self, status, content_type, body):
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def _drip(self, body, delay):
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/html")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            for i in range(len(body)):
                self.wfile.write(body[i:i + 1])
                self.wfile.flush()
                time.sleep(delay)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, *args):
        pass


@pytest.fixture()
def base_url():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def test_html_page_is_success(base_url) -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        outcome = fetcher(f"{base_url}/page")

    assert outcome == Success(PAGE_HTML)


def test_html_page_without_charset_is_detected(base_url) -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        outcome = fetcher(f"{base_url}/plain")

    assert outcome == Success(PLAIN_HTML)


def test_timeout_bounds_slow_body(base_url) -> None:
    start = time.monotonic()
    with PageFetcher(FetchConfig(timeout=0.5)) as fetcher:
        outcome = fetcher(f"{base_url}/drip")
    elapsed = time.monotonic() - start

    assert isinstance(outcome, Failure)
    assert "Timed out" in outcome.reason
    assert elapsed < 2.0


def test_unparsable_host_is_failure() -> None:
    with PageFetcher(FetchConfig(timeout=1)) as fetcher:
        outcome = fetcher(LONG_LABEL_URL)

    assert isinstance(outcome, Failure)
    assert outcome.reason


def test_content_type_match_is_case_insensitive(base_url) -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        assert isinstance(fetcher(f"{base_url}/upper"), Success)


def test_non_html_is_failure(base_url) -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        assert fetcher(f"{base_url}/json") == Failure("Page is not HTML")


def test_http_error_status_is_failure(base_url) -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        outcome = fetcher(f"{base_url}/missing")

    assert isinstance(outcome, Failure)
    assert "404" in outcome.reason


def test_timeout_is_failure(base_url) -> None:
    with PageFetcher(FetchConfig(timeout=0.2)) as fetcher:
        outcome = fetcher(f"{base_url}/slow")

    assert isinstance(outcome, Failure)
    assert outcome.reason


def test_invalid_url_is_failure() -> None:
    with PageFetcher(FetchConfig()) as fetcher:
        outcome = fetcher("not a url")

    assert isinstance(outcome, Failure)


def test_fetch_page_stamps_utc_time() -> None:
    result = fetch_page(lambda url: Success("<p/>"), "https://a/")

    assert result.url == "https://a/"
    assert result.fetched_at.tzinfo is not None
    assert abs((datetime.now(timezone.utc) - result.fetched_at).total_seconds()) < 60


def test_fetch_result_from_dict_rejects_unknown_kind() -> None:
    payload = {"url": "https://a/", "fetched_at": "2024-01-01T00:00:00+00:00", "outcome": {"kind": "maybe"}}

    with pytest.raises(ValueError):
        FetchResult.from_dict(payload)


def test_fetch_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("HISTFETCH_PARALLELISM", "3")
    monkeypatch.setenv("HISTFETCH_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("HISTFETCH_BUNDLE_SIZE", "nope")

    config = FetchConfig.from_env()

    assert config.parallelism == 3
    assert config.timeout == 2.5
    assert config.bundle_size == 500
