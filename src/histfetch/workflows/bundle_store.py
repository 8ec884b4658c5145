"""Append-only bundle persistence for fetch results.

A bundle is one zstandard-compressed JSON array of fetch results. Bundles are
named after the nanosecond timestamp of their write and are never modified
after the rename that publishes them. Files whose name starts with a dot are
in-progress writes and are not bundles.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Iterator, List, Sequence

import zstandard as zstd

from .fetcher_config import TMP_PREFIX, TMP_SUFFIX, ZSTD_LEVEL
from .web_fetch import FetchResult

logger = logging.getLogger(__name__)


class BundleError(RuntimeError):
    """Storage failure while reading or writing a bundle."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class BundleReadError(BundleError):
    pass


class BundleWriteError(BundleError):
    pass


def write_compressed_json(path: Path, payload: Any) -> None:
    """Serialize payload as compressed JSON; publish atomically via a hidden temp file."""

    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    compressed = zstd.ZstdCompressor(level=ZSTD_LEVEL).compress(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{TMP_PREFIX}{path.name}{TMP_SUFFIX}")
    try:
        with tmp_path.open("wb") as fh:
            fh.write(compressed)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_compressed_json(path: Path) -> Any:
    with path.open("rb") as fh:
        compressed = fh.read()
    data = zstd.ZstdDecompressor().decompressobj().decompress(compressed)
    return json.loads(data.decode("utf-8"))


def _is_bundle_file(path: Path) -> bool:
    return path.is_file() and not path.name.startswith(TMP_PREFIX)


class BundleStore:
    """Directory of immutable bundles. Safe to share between worker threads."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._name_lock = threading.Lock()
        self._last_stamp = 0

    def ensure(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def list_bundles(self) -> List[Path]:
        self.ensure()
        return sorted(p for p in self.directory.iterdir() if _is_bundle_file(p))

    def read_bundle(self, path: Path) -> List[FetchResult]:
        try:
            payload = read_compressed_json(path)
            if not isinstance(payload, list):
                raise ValueError("bundle payload is not a list")
            return [FetchResult.from_dict(item) for item in payload]
        except (OSError, ValueError, zstd.ZstdError) as exc:
            raise BundleReadError(path, f"Unable to read bundle ({exc})") from exc

    def iter_results(self) -> Iterator[FetchResult]:
        for path in self.list_bundles():
            yield from self.read_bundle(path)

    def _allocate_path(self) -> Path:
        with self._name_lock:
            stamp = max(time.time_ns(), self._last_stamp + 1)
            self._last_stamp = stamp
        path = self.directory / str(stamp)
        suffix = 1
        while path.exists():
            path = self.directory / f"{stamp}_{suffix}"
            suffix += 1
        return path

    def write_bundle(self, results: Sequence[FetchResult]) -> Path:
        """Persist results as a new bundle and return its path."""
        if not results:
            raise ValueError("refusing to write an empty bundle")
        self.ensure()
        path = self._allocate_path()
        try:
            write_compressed_json(path, [result.to_dict() for result in results])
        except (OSError, TypeError, ValueError, zstd.ZstdError) as exc:
            raise BundleWriteError(path, f"Unable to write bundle ({exc})") from exc
        return path
