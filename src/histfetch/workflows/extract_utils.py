"""Readable-text extraction from downloaded HTML pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, Comment

from .html_normalize import collapse_whitespace, minimal_text_fix

_SKIP_TAGS = ("script", "style", "title")


@dataclass
class ExtractedText:
    title: Optional[str]
    content: str


def extract_readable_text(html_source: str) -> ExtractedText:
    """Return the first ``<title>`` and the visible text of the page.

    Text inside ``script`` and ``style`` is dropped, as is the title itself
    (it is indexed separately), and so are HTML comments.
    """

    soup = BeautifulSoup(html_source or "", "lxml")
    title: Optional[str] = None
    title_tag = soup.find("title")
    if title_tag is not None:
        title = collapse_whitespace(minimal_text_fix(title_tag.get_text())) or None

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup.find_all(_SKIP_TAGS):
        tag.decompose()
    content = collapse_whitespace(minimal_text_fix(soup.get_text(" ")))
    return ExtractedText(title=title, content=content)
