"""Build the full-text search index from downloaded bundles."""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from whoosh import index as whoosh_index
from whoosh.analysis import StemmingAnalyzer
from whoosh.fields import DATETIME, TEXT, Schema

from ..core.keys import K_CONTENT, K_LAST_VISIT, K_TITLE, K_URL
from .bundle_store import BundleStore
from .extract_utils import extract_readable_text
from .fetcher_config import INDEX_WRITER_MEMORY_MB, DataPaths
from .history import HistoryItem, load_history
from .web_fetch import Success

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


def build_schema() -> Schema:
    return Schema(
        url=TEXT(stored=True),
        title=TEXT(stored=True),
        last_visit=DATETIME(stored=True),
        content=TEXT(stored=True, analyzer=StemmingAnalyzer()),
    )


@dataclass
class IndexSummary:
    bundles: int = 0
    pages_seen: int = 0
    pages_indexed: int = 0


def decide_title(history_item: Optional[HistoryItem], extracted_title: Optional[str]) -> Optional[str]:
    """Combine the browser's title with the page's own ``<title>``."""

    history_title = history_item.title if history_item else None
    if history_title and extracted_title:
        if history_title == extracted_title:
            return history_title
        return f"{history_title}, {extracted_title}"
    return history_title or extracted_title or None


def decide_last_visit(history_item: Optional[HistoryItem]) -> Optional[datetime]:
    if history_item is None or history_item.last_visit is None:
        return None
    # whoosh DATETIME fields only accept naive values; store UTC
    return history_item.last_visit.astimezone(timezone.utc).replace(tzinfo=None)


def _prepare_bundle(
    store: BundleStore,
    path: Path,
    history_by_url: Mapping[str, HistoryItem],
) -> Tuple[Path, List[Document], int]:
    results = store.read_bundle(path)
    documents: List[Document] = []
    for result in results:
        if not isinstance(result.outcome, Success):
            continue
        extracted = extract_readable_text(result.outcome.body)
        history_item = history_by_url.get(result.url)
        document: Document = {K_URL: result.url, K_CONTENT: extracted.content}
        title = decide_title(history_item, extracted.title)
        if title:
            document[K_TITLE] = title
        last_visit = decide_last_visit(history_item)
        if last_visit is not None:
            document[K_LAST_VISIT] = last_visit
        documents.append(document)
    return path, documents, len(results)


def _recreate_index(index_dir: Path) -> "whoosh_index.Index":
    if index_dir.exists():
        shutil.rmtree(index_dir)
    index_dir.mkdir(parents=True)
    return whoosh_index.create_in(str(index_dir), build_schema())


def index_contents(paths: DataPaths, max_workers: Optional[int] = None) -> IndexSummary:
    """Rebuild the search index from every bundle, indexing only successful HTML pages."""

    history = load_history(paths.history)
    history_by_url = {item.url: item for item in history}

    store = BundleStore(paths.raw_pages_dir)
    bundles = store.list_bundles()
    ix = _recreate_index(paths.index_dir)
    writer = ix.writer(limitmb=INDEX_WRITER_MEMORY_MB)
    summary = IndexSummary(bundles=len(bundles))
    try:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            prepared = pool.map(lambda p: _prepare_bundle(store, p, history_by_url), bundles)
            for path, documents, total in prepared:
                for document in documents:
                    writer.add_document(**document)
                summary.pages_seen += total
                summary.pages_indexed += len(documents)
                logger.info("Indexed %d out of %d pages from %s", len(documents), total, path)
    except BaseException:
        writer.cancel()
        raise
    writer.commit()
    return summary
