"""High-level exports for the histfetch workflows."""

from .bundle_store import BundleError, BundleReadError, BundleStore, BundleWriteError
from .completion import scan_completed_urls
from .fetcher import DownloadSummary, FetchWorker, run_download_pipeline
from .fetcher_config import DataPaths
from .history import HistoryItem, extract_firefox_history, load_history
from .indexer import index_contents
from .search import search
from .web_fetch import Failure, FetchConfig, FetchResult, PageFetcher, Success
from .work_queue import WorkQueue

__all__ = [
    "BundleError",
    "BundleReadError",
    "BundleStore",
    "BundleWriteError",
    "DataPaths",
    "DownloadSummary",
    "Failure",
    "FetchConfig",
    "FetchResult",
    "FetchWorker",
    "HistoryItem",
    "PageFetcher",
    "Success",
    "WorkQueue",
    "extract_firefox_history",
    "index_contents",
    "load_history",
    "run_download_pipeline",
    "scan_completed_urls",
    "search",
]
