from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

import requests

from ..core.keys import (
    K_BODY,
    K_FETCHED_AT,
    K_KIND,
    K_OUTCOME,
    K_REASON,
    K_URL,
    KIND_FAILURE,
    KIND_SUCCESS,
)
from .fetcher_config import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_BUNDLE_SIZE,
    DEFAULT_PARALLELISM,
    DEFAULT_PROGRESS_EVERY,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    HTML_CONTENT_TYPE,
    NOT_HTML_REASON,
    READ_CHUNK_BYTES,
)
from .html_normalize import decode_bytes_auto

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True, slots=True)
class Success:
    """The page answered 2xx with an HTML body."""

    body: str


@dataclass(frozen=True, slots=True)
class Failure:
    """Terminal failure: transport error, non-2xx status or non-HTML content."""

    reason: str


Outcome = Union[Success, Failure]
FetchFunc = Callable[[str], Outcome]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Recorded outcome of one fetch attempt; the unit stored in bundles."""

    url: str
    outcome: Outcome
    fetched_at: datetime = field(default_factory=_utcnow)

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.outcome, Success):
            outcome = {K_KIND: KIND_SUCCESS, K_BODY: self.outcome.body}
        else:
            outcome = {K_KIND: KIND_FAILURE, K_REASON: self.outcome.reason}
        return {
            K_URL: self.url,
            K_FETCHED_AT: self.fetched_at.isoformat(),
            K_OUTCOME: outcome,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FetchResult":
        if not isinstance(payload, dict):
            raise ValueError(f"Bundle record must be an object, got {type(payload).__name__}")
        url = payload.get(K_URL)
        if not isinstance(url, str) or not url:
            raise ValueError(f"Bundle record missing '{K_URL}'")
        raw_outcome = payload.get(K_OUTCOME) or {}
        kind = raw_outcome.get(K_KIND) if isinstance(raw_outcome, dict) else None
        outcome: Outcome
        if kind == KIND_SUCCESS:
            outcome = Success(str(raw_outcome.get(K_BODY) or ""))
        elif kind == KIND_FAILURE:
            outcome = Failure(str(raw_outcome.get(K_REASON) or ""))
        else:
            raise ValueError(f"Unknown outcome kind for {url}: {kind!r}")
        return cls(url=url, outcome=outcome, fetched_at=_parse_timestamp(payload.get(K_FETCHED_AT)))


@dataclass
class FetchConfig:
    """Knobs for one download run (worker count, per-request timeout, bundle threshold)."""

    parallelism: int = DEFAULT_PARALLELISM
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    bundle_size: int = DEFAULT_BUNDLE_SIZE
    progress_every: int = DEFAULT_PROGRESS_EVERY
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE

    @classmethod
    def from_env(cls) -> "FetchConfig":
        return cls(
            parallelism=_env_int("HISTFETCH_PARALLELISM", DEFAULT_PARALLELISM),
            timeout=_env_float("HISTFETCH_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            bundle_size=_env_int("HISTFETCH_BUNDLE_SIZE", DEFAULT_BUNDLE_SIZE),
            progress_every=_env_int("HISTFETCH_PROGRESS_EVERY", DEFAULT_PROGRESS_EVERY),
            user_agent=os.getenv("HISTFETCH_USER_AGENT") or DEFAULT_USER_AGENT,
        )

    def validate(self) -> None:
        if self.parallelism <= 0:
            raise ValueError("parallelism must be a positive integer")
        if self.bundle_size <= 0:
            raise ValueError("bundle_size must be a positive integer")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.progress_every <= 0:
            raise ValueError("progress_every must be a positive integer")


def _is_html(content_type: Optional[str]) -> bool:
    return (content_type or "").strip().lower().startswith(HTML_CONTENT_TYPE)


def _describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class PageFetcher:
    """Blocking HTTP fetcher owning one requests session. One instance per worker thread."""

    def __init__(self, config: FetchConfig) -> None:
        self.config = config
        self._session = requests.Session()
        self._session.headers.update(
            {
                "User-Agent": config.user_agent,
                "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
                "Accept-Language": config.accept_language,
            }
        )

    def _timed_out(self, url: str) -> Failure:
        return Failure(f"Timed out after {self.config.timeout:g}s for url: {url}")

    def _read_body(self, resp: requests.Response, deadline: float) -> Optional[bytes]:
        """Read the streamed body, or return None once ``deadline`` passes.

        ``read1`` returns after a single socket read, so a server trickling
        bytes cannot hold the worker past the deadline by more than one
        socket timeout.
        """
        chunks = []
        while True:
            if time.monotonic() >= deadline:
                return None
            chunk = resp.raw.read1(READ_CHUNK_BYTES, decode_content=True)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def fetch(self, url: str) -> Outcome:
        """GET the URL and classify the response; never raises for per-URL errors.

        The configured timeout is a deadline for the whole request, body
        included.
        """
        deadline = time.monotonic() + self.config.timeout
        try:
            with self._session.get(url, timeout=self.config.timeout, stream=True) as resp:
                resp.raise_for_status()
                if not 200 <= resp.status_code < 300:
                    # Redirect-class responses that were not followed (e.g. 304, 3xx without Location)
                    return Failure(f"{resp.status_code} {resp.reason or 'Unexpected status'} for url: {resp.url}")
                if not _is_html(resp.headers.get("Content-Type")):
                    return Failure(NOT_HTML_REASON)
                body = self._read_body(resp, deadline)
                if body is None:
                    return self._timed_out(url)
                return Success(decode_bytes_auto(body, resp.headers))
        except Exception as exc:
            # urllib3 and idna raise some URL errors unwrapped
            reason = _describe_error(exc)
            logger.debug("fetch failed for %s: %s", url, reason)
            return Failure(reason)

    def close(self) -> None:
        self._session.close()

    def __call__(self, url: str) -> Outcome:
        return self.fetch(url)

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def fetch_page(fetch: FetchFunc, url: str) -> FetchResult:
    """Run one fetch and stamp the result with the UTC time it completed."""
    outcome = fetch(url)
    return FetchResult(url=url, outcome=outcome, fetched_at=_utcnow())
