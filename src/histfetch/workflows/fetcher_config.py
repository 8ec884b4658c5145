"""histfetch defaults (data layout, pipeline knobs, headers, index limits).

Centralizes static defaults so the workflow modules have no embedded magic
numbers or paths. These are baseline values used to build a FetchConfig and
DataPaths; callers can pass their own to override any of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Data layout (relative to the data directory)
DEFAULT_DATA_DIR = Path("data")
FIREFOX_DATABASE_NAME = "places.sqlite"
HISTORY_NAME = "history"
RAW_PAGES_DIR_NAME = "raw_pages"
INDEX_DIR_NAME = "index"

# Pipeline defaults
DEFAULT_PARALLELISM = 10
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_BUNDLE_SIZE = 500
DEFAULT_PROGRESS_EVERY = 1_000

# HTTP
HTML_CONTENT_TYPE = "text/html"
READ_CHUNK_BYTES = 64 * 1024
NOT_HTML_REASON = "Page is not HTML"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"

# Bundle encoding
ZSTD_LEVEL = 3
TMP_PREFIX = "."
TMP_SUFFIX = ".tmp"

# Search
DEFAULT_SEARCH_LIMIT = 10
INDEX_WRITER_MEMORY_MB = 256


@dataclass(frozen=True, slots=True)
class DataPaths:
    """Storage locations derived from a single data directory."""

    data_dir: Path

    @classmethod
    def from_dir(cls, data_dir: str | Path | None = None) -> "DataPaths":
        return cls(Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR)

    @property
    def firefox_database(self) -> Path:
        return self.data_dir / FIREFOX_DATABASE_NAME

    @property
    def history(self) -> Path:
        return self.data_dir / HISTORY_NAME

    @property
    def raw_pages_dir(self) -> Path:
        return self.data_dir / RAW_PAGES_DIR_NAME

    @property
    def index_dir(self) -> Path:
        return self.data_dir / INDEX_DIR_NAME
