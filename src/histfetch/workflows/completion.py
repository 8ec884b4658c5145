"""Detect which URLs were already fetched by earlier runs."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Set

from .bundle_store import BundleStore

logger = logging.getLogger(__name__)


def scan_completed_urls(store: BundleStore, max_workers: Optional[int] = None) -> Set[str]:
    """Union of URLs across every bundle in the store.

    Bundles are read in parallel. A bundle that cannot be read or parsed
    aborts the scan with :class:`BundleReadError`: skipping it would make the
    pipeline refetch (and duplicate) everything it holds.
    """

    bundles = store.list_bundles()
    completed: Set[str] = set()
    if not bundles:
        return completed
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        # map() re-raises the first failing bundle in submission order
        for results in pool.map(store.read_bundle, bundles):
            completed.update(result.url for result in results)
    logger.debug("scanned %d bundles in %s", len(bundles), store.directory)
    return completed
