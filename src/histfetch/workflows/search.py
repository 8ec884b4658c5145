"""Query the full-text index built by :mod:`histfetch.workflows.indexer`."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from whoosh import index as whoosh_index
from whoosh.highlight import ContextFragmenter, HtmlFormatter
from whoosh.qparser import FuzzyTermPlugin, MultifieldParser
from whoosh.query import FuzzyTerm, Query, Term

from ..core.keys import K_CONTENT, K_LAST_VISIT, K_TITLE, K_URL
from .fetcher_config import DEFAULT_SEARCH_LIMIT, DataPaths

SNIPPET_MAX_CHARS = 300
CONTENT_MAX_EDITS = 1


@dataclass
class SearchHit:
    rank: int
    url: str
    title: Optional[str]
    last_visit: Optional[datetime]
    snippet: str
    score: float


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _fuzzy_content_term(node: Query) -> Query:
    # exact type check: FuzzyTerm, Prefix and friends are left as parsed
    if type(node) is Term and node.fieldname == K_CONTENT:
        return FuzzyTerm(node.fieldname, node.text, boost=node.boost, maxdist=CONTENT_MAX_EDITS, prefixlength=0)
    return node


def search(paths: DataPaths, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[SearchHit]:
    """Run a query over url, title and content.

    Content terms tolerate one edit; ``term~`` makes url and title terms
    fuzzy too.
    """

    if not (query or "").strip():
        raise ValueError("query must be a non-empty string")
    if not whoosh_index.exists_in(str(paths.index_dir)):
        raise FileNotFoundError(
            f"Search index not found: {paths.index_dir} (run `histfetch index-contents` first)"
        )
    ix = whoosh_index.open_dir(str(paths.index_dir))
    parser = MultifieldParser([K_URL, K_TITLE, K_CONTENT], schema=ix.schema)
    parser.add_plugin(FuzzyTermPlugin())
    parsed = parser.parse(query).accept(_fuzzy_content_term)

    hits: List[SearchHit] = []
    with ix.searcher() as searcher:
        results = searcher.search(parsed, limit=limit)
        results.fragmenter = ContextFragmenter(maxchars=SNIPPET_MAX_CHARS, surround=60)
        results.formatter = HtmlFormatter(tagname="b")
        for rank, hit in enumerate(results, start=1):
            content = hit.get(K_CONTENT) or ""
            snippet = hit.highlights(K_CONTENT) or content[:SNIPPET_MAX_CHARS]
            hits.append(
                SearchHit(
                    rank=rank,
                    url=hit[K_URL],
                    title=hit.get(K_TITLE),
                    last_visit=_as_utc(hit.get(K_LAST_VISIT)),
                    snippet=snippet,
                    score=float(hit.score or 0.0),
                )
            )
    return hits


def format_hits(hits: List[SearchHit]) -> str:
    lines: List[str] = []
    for hit in hits:
        lines.append(f"{hit.rank}. {hit.url}")
        if hit.title:
            lines.append(f"  Title: {hit.title}")
        if hit.last_visit is None:
            lines.append("  Last visit: unknown")
        else:
            lines.append(f"  Last visit: {hit.last_visit}")
        lines.append(f"{hit.snippet}\n")
    return "\n".join(lines)
