"""Turn response bytes into clean text for the bundles and the search index."""

from __future__ import annotations

import re
import unicodedata
from typing import Mapping, Optional

import ftfy
from charset_normalizer import from_bytes

_CHARSET_RE = re.compile(r"charset=([^\s;]+)", re.I)
_WHITESPACE_RE = re.compile(r"\s+")

# zero-width marks and NUL/VT/FF are dropped, C1 controls become spaces
_NOISE_TABLE = {cp: None for cp in (0x00, 0x0B, 0x0C, 0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF)}
_NOISE_TABLE.update({cp: " " for cp in range(0x80, 0xA0)})


def charset_from_headers(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    if not headers:
        return None
    content_type = headers.get("content-type") or headers.get("Content-Type") or ""
    match = _CHARSET_RE.search(content_type)
    if match is None:
        return None
    return match.group(1).strip(" \"'").lower() or None


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode with the declared charset; guess with charset-normalizer when it is absent or wrong."""

    if not body:
        return ""
    declared = charset_from_headers(headers)
    if declared:
        try:
            return body.decode(declared)
        except (LookupError, UnicodeDecodeError):
            pass
    guess = from_bytes(body).best()
    return body.decode("utf-8", errors="replace") if guess is None else str(guess)


def minimal_text_fix(text: str) -> str:
    if not text:
        return ""
    repaired = ftfy.fix_text(unicodedata.normalize("NFC", text), normalization="NFC")
    return repaired.translate(_NOISE_TABLE)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


__all__ = [
    "charset_from_headers",
    "collapse_whitespace",
    "decode_bytes_auto",
    "minimal_text_fix",
]
