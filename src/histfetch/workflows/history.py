"""Browsing-history snapshot: the URL universe consumed by the download pipeline."""

from __future__ import annotations

import logging
import shutil
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urldefrag, urlsplit

from ..core.keys import K_LAST_VISIT, K_TITLE, K_URL
from .bundle_store import read_compressed_json, write_compressed_json
from .fetcher_config import FIREFOX_DATABASE_NAME, DataPaths

logger = logging.getLogger(__name__)

MOZ_PLACES_QUERY = "SELECT url, title, last_visit_date FROM moz_places"


@dataclass(frozen=True, slots=True)
class HistoryItem:
    """One visited URL plus the metadata the indexer merges into the corpus."""

    url: str
    title: Optional[str] = None
    last_visit: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_URL: self.url,
            K_TITLE: self.title,
            K_LAST_VISIT: self.last_visit.isoformat() if self.last_visit else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "HistoryItem":
        url = payload.get(K_URL) if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url:
            raise ValueError(f"History entry missing '{K_URL}': {payload!r}")
        raw_visit = payload.get(K_LAST_VISIT)
        last_visit = None
        if raw_visit:
            last_visit = datetime.fromisoformat(raw_visit)
            if last_visit.tzinfo is None:
                last_visit = last_visit.replace(tzinfo=timezone.utc)
        return cls(url=url, title=payload.get(K_TITLE), last_visit=last_visit)


def save_history(path: Path, items: Iterable[HistoryItem]) -> None:
    write_compressed_json(path, [item.to_dict() for item in items])


def load_history(path: Path) -> List[HistoryItem]:
    if not path.exists():
        raise FileNotFoundError(
            f"History snapshot not found: {path} (run `histfetch extract-firefox-history` first)"
        )
    payload = read_compressed_json(path)
    if not isinstance(payload, list):
        raise ValueError(f"History snapshot {path} is not a list")
    return [HistoryItem.from_dict(entry) for entry in payload]


def strip_fragment(url: str) -> str:
    """Drop the ``#fragment`` part so anchors on one page collapse to one URL."""

    if not isinstance(url, str):
        raise ValueError(f"Not a URL: {url!r}")
    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return urldefrag(url).url


def _visit_from_micros(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1_000_000, tz=timezone.utc)


def merge_history_item(previous: HistoryItem, item: HistoryItem) -> HistoryItem:
    title = previous.title if previous.title is not None else item.title
    visits = [v for v in (previous.last_visit, item.last_visit) if v is not None]
    return HistoryItem(url=previous.url, title=title, last_visit=max(visits) if visits else None)


def dedupe_history(items: Iterable[HistoryItem]) -> List[HistoryItem]:
    by_url: Dict[str, HistoryItem] = {}
    for item in items:
        previous = by_url.get(item.url)
        by_url[item.url] = item if previous is None else merge_history_item(previous, item)
    return list(by_url.values())


def read_places(database: Path) -> List[HistoryItem]:
    """Read every row of ``moz_places`` as a HistoryItem (fragments stripped, not yet deduplicated)."""

    items: List[HistoryItem] = []
    conn = sqlite3.connect(database)
    try:
        for url, title, last_visit_date in conn.execute(MOZ_PLACES_QUERY):
            try:
                clean = strip_fragment(url)
            except ValueError:
                logger.debug("skipping unparsable history URL %r", url)
                continue
            items.append(HistoryItem(url=clean, title=title, last_visit=_visit_from_micros(last_visit_date)))
    finally:
        conn.close()
    return items


def extract_firefox_history(profile_path: Path, paths: DataPaths) -> List[HistoryItem]:
    """Copy a Firefox profile's places database and write the deduplicated history snapshot."""

    source = Path(profile_path) / FIREFOX_DATABASE_NAME
    if not source.exists():
        raise FileNotFoundError(f"Firefox history database not found: {source}")
    paths.data_dir.mkdir(parents=True, exist_ok=True)
    # Firefox keeps the live database locked while running
    shutil.copyfile(source, paths.firefox_database)
    logger.info("Copied Firefox database")

    history = dedupe_history(read_places(paths.firefox_database))
    logger.info("Extracted %d visited URLs", len(history))

    save_history(paths.history, history)
    logger.info("Wrote history to %s", paths.history)
    return history
