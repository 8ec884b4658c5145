"""Resumable parallel download pipeline.

Already-fetched URLs are discovered from existing bundles, the rest of the
history goes into a shared queue, and a fixed pool of worker threads drains
it. Each worker buffers its own results and publishes them as bundles of
``bundle_size`` entries, plus one final partial bundle when the queue runs
dry. A crash loses at most the unflushed buffer of each worker; those URLs
are simply fetched again on the next run.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from .bundle_store import BundleStore
from .completion import scan_completed_urls
from .fetcher_config import DataPaths
from .history import HistoryItem, load_history
from .web_fetch import FetchConfig, FetchFunc, FetchResult, PageFetcher, fetch_page
from .work_queue import WorkQueue

logger = logging.getLogger(__name__)

FetchFactory = Callable[[FetchConfig], FetchFunc]


@dataclass
class DownloadSummary:
    """Outcome payload of one download run."""

    already_downloaded: int
    history_size: int
    queued: int
    fetched: int = 0
    succeeded: int = 0
    failed: int = 0
    bundles: List[Path] = field(default_factory=list)
    runtime_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "already_downloaded": self.already_downloaded,
            "history_size": self.history_size,
            "queued": self.queued,
            "fetched": self.fetched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "bundles_written": len(self.bundles),
            "runtime_seconds": round(self.runtime_seconds, 3),
        }


class _RunStats:
    """Counters shared by all workers of one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.fetched = 0
        self.succeeded = 0
        self.failed = 0
        self.bundles: List[Path] = []

    def record_result(self, result: FetchResult) -> None:
        with self._lock:
            self.fetched += 1
            if result.ok:
                self.succeeded += 1
            else:
                self.failed += 1

    def record_bundle(self, path: Path) -> None:
        with self._lock:
            self.bundles.append(path)


def _default_fetch_factory(config: FetchConfig) -> FetchFunc:
    return PageFetcher(config)


class FetchWorker:
    """One worker thread: pop, fetch, buffer, flush."""

    def __init__(
        self,
        queue: WorkQueue[HistoryItem],
        store: BundleStore,
        fetch: FetchFunc,
        config: FetchConfig,
        stats: Optional[_RunStats] = None,
    ) -> None:
        self.queue = queue
        self.store = store
        self.fetch = fetch
        self.config = config
        self.stats = stats or _RunStats()
        self.pending: List[FetchResult] = []

    def flush(self) -> Optional[Path]:
        """Write buffered results as a bundle and clear the buffer. Errors are fatal to the worker."""
        if not self.pending:
            return None
        path = self.store.write_bundle(self.pending)
        self.pending.clear()
        self.stats.record_bundle(path)
        logger.info("Wrote bundle to %s", path)
        return path

    def run(self) -> int:
        """Drain the queue; return how many targets this worker consumed."""
        consumed = 0
        while True:
            target, remaining = self.queue.pop()
            if remaining > 0 and remaining % self.config.progress_every == 0:
                logger.info("%d URLs remaining", remaining)
            if target is None:
                break
            consumed += 1
            result = fetch_page(self.fetch, target.url)
            self.pending.append(result)
            self.stats.record_result(result)
            if len(self.pending) >= self.config.bundle_size:
                self.flush()
        self.flush()
        return consumed


def _run_worker(
    queue: WorkQueue[HistoryItem],
    store: BundleStore,
    fetch_factory: FetchFactory,
    config: FetchConfig,
    stats: _RunStats,
) -> int:
    fetch = fetch_factory(config)
    try:
        return FetchWorker(queue, store, fetch, config, stats).run()
    finally:
        close = getattr(fetch, "close", None)
        if callable(close):
            close()


def run_download_pipeline(
    paths: DataPaths,
    config: Optional[FetchConfig] = None,
    *,
    universe: Optional[Sequence[HistoryItem]] = None,
    fetch_factory: Optional[FetchFactory] = None,
) -> DownloadSummary:
    """Fetch every history URL that no existing bundle already covers.

    Raises the first fatal error raised by any worker (bundle write failures),
    but only after every worker has finished. Bundles already written stay on
    disk; running the pipeline again resumes from them.
    """

    config = config or FetchConfig()
    config.validate()
    factory = fetch_factory or _default_fetch_factory
    start = time.perf_counter()

    store = BundleStore(paths.raw_pages_dir)
    completed = scan_completed_urls(store)
    logger.info("Detected that %d URLs were already downloaded", len(completed))

    if universe is None:
        universe = load_history(paths.history)
    logger.info("Read history with %d URLs", len(universe))

    queue = WorkQueue.from_universe(universe, completed)
    summary = DownloadSummary(
        already_downloaded=len(completed),
        history_size=len(universe),
        queued=len(queue),
    )
    logger.info("Prepare to download %d URLs", summary.queued)

    stats = _RunStats()
    first_error: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=config.parallelism, thread_name_prefix="histfetch") as pool:
        futures = [
            pool.submit(_run_worker, queue, store, factory, config, stats)
            for _ in range(config.parallelism)
        ]
        for future in as_completed(futures):
            exc = future.exception()
            if exc is None:
                continue
            if first_error is None:
                first_error = exc
            else:
                logger.error("additional worker failure: %s", exc)

    summary.fetched = stats.fetched
    summary.succeeded = stats.succeeded
    summary.failed = stats.failed
    summary.bundles = list(stats.bundles)
    summary.runtime_seconds = time.perf_counter() - start
    if first_error is not None:
        raise first_error
    logger.info(
        "Downloaded %d URLs (%d ok, %d failed) into %d bundles",
        summary.fetched,
        summary.succeeded,
        summary.failed,
        len(summary.bundles),
    )
    return summary
